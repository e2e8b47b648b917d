"""
Daily medication recheck.
Recomputes every stored medicine's status for a given day and records a
reminder for each active course that is about to run out.
"""

import logging
from datetime import date

from medvault.database import db
from medvault.models.models import MedicationReminder, Prescription
from medvault.services.medication_status import evaluate_medications

logger = logging.getLogger("medvault.reminders")


def generate_reminders(today: date, window_days: int) -> dict:
    """
    Create one reminder per (medicine, day) for active medicines with at
    most `window_days` left. Safe to run more than once per day.
    """
    stats = {"checked": 0, "created": 0, "existing": 0}

    existing = {
        medicine_id
        for (medicine_id,) in db.session.query(MedicationReminder.medicine_id)
        .filter(MedicationReminder.reminder_date == today)
        .all()
    }

    for view in evaluate_medications(Prescription.query.all(), today):
        stats["checked"] += 1
        remaining = view.status.remaining_days
        if not view.status.is_active or remaining is None or remaining > window_days:
            continue
        if view.medicine.id in existing:
            stats["existing"] += 1
            continue
        db.session.add(MedicationReminder(
            user_id=view.prescription.user_id,
            medicine_id=view.medicine.id,
            reminder_date=today,
            remaining_days=remaining,
        ))
        existing.add(view.medicine.id)
        stats["created"] += 1

    db.session.commit()
    return stats


def unread_reminders(user, limit: int = 10) -> list[MedicationReminder]:
    return (
        MedicationReminder.query
        .filter_by(user_id=user.id, is_read=False)
        .order_by(MedicationReminder.reminder_date.desc(), MedicationReminder.remaining_days)
        .limit(limit)
        .all()
    )


def mark_read(user, reminder_id: int) -> bool:
    reminder = MedicationReminder.query.filter_by(id=reminder_id, user_id=user.id).first()
    if reminder is None:
        return False
    reminder.is_read = True
    db.session.commit()
    return True
