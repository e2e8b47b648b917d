"""
Medication status engine.

Classifies each medicine as active or completed relative to a
caller-supplied "today" and computes its remaining days. Everything here
is a pure function of already-fetched data: no database access, no clock
reads, no exceptions for bad input. An unknown start date or duration is
treated as completed with zero days remaining.

Works on ORM rows and on MedicineData alike; a medicine needs
`prescribed_date` and `duration`, a prescription needs `extracted_date`
and `form_date` (and `medicines` for the aggregate helpers).
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from medvault.services.normalization import DURATION_DAYS, parse_date, parse_duration


@dataclass(frozen=True)
class MedicationStatus:
    is_active: bool
    remaining_days: Optional[int]   # None only for indefinite medicines treated as active
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_indefinite: bool = False


_COMPLETED = MedicationStatus(is_active=False, remaining_days=0)


def _as_day(value) -> Optional[date]:
    """Truncate to a calendar date; datetimes lose their time of day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(value)


def resolve_start_date(medicine, prescription=None) -> Optional[date]:
    """
    First parseable date wins: the medicine's own prescribed date, then
    the date extracted from the document, then the user-entered form date.
    """
    candidates = [getattr(medicine, "prescribed_date", None)]
    if prescription is not None:
        candidates.append(getattr(prescription, "extracted_date", None))
        candidates.append(getattr(prescription, "form_date", None))
    for candidate in candidates:
        resolved = _as_day(candidate)
        if resolved is not None:
            return resolved
    return None


def _course_end(start: date, days: int) -> Optional[date]:
    try:
        return start + timedelta(days=days)
    except (OverflowError, TypeError):
        return None


def remaining_days(start_date, duration, today) -> int:
    """
    Days left in a course that starts on `start_date` and lasts `duration`
    days, as of `today`. Never negative, never raises.
    """
    start = _as_day(start_date)
    day = _as_day(today)
    parsed = parse_duration(duration)
    if start is None or day is None or parsed.kind != DURATION_DAYS:
        return 0

    end = _course_end(start, parsed.days)
    if end is None:
        return 0
    remaining = math.ceil((end - day).total_seconds() / 86400)
    return max(remaining, 0)


def medicine_status(medicine, prescription=None, today=None, indefinite_as_active: bool = False) -> MedicationStatus:
    """Classify one medicine as of `today` (a date or datetime, required)."""
    day = _as_day(today)
    start = resolve_start_date(medicine, prescription)
    if day is None or start is None:
        return _COMPLETED

    duration = parse_duration(getattr(medicine, "duration", None))
    if duration.is_indefinite:
        if indefinite_as_active and start <= day:
            return MedicationStatus(True, None, start, None, True)
        return MedicationStatus(False, 0, start, None, True)

    end = _course_end(start, duration.days) if duration.kind == DURATION_DAYS else None
    if end is None:
        return MedicationStatus(False, 0, start)

    left = max((end - day).days, 0)
    return MedicationStatus(left > 0, left, start, end)


@dataclass(frozen=True)
class MedicationView:
    """A medicine paired with its parent prescription and computed status."""
    medicine: Any
    prescription: Any
    status: MedicationStatus

    def to_dict(self) -> dict:
        med = self.medicine
        rx = self.prescription
        duration = parse_duration(getattr(med, "duration", None))
        return {
            "medicine_id": getattr(med, "id", None),
            "medicine_name": med.medicine_name,
            "dosage": getattr(med, "dosage", None),
            "frequency": getattr(med, "frequency", None),
            "duration": duration.canonical(),
            "prescription_id": getattr(rx, "id", None),
            "doctor_name": getattr(rx, "doctor_name", None),
            "hospital_name": getattr(rx, "hospital_name", None),
            "is_active": self.status.is_active,
            "remaining_days": self.status.remaining_days,
            "is_indefinite": self.status.is_indefinite,
            "start_date": self.status.start_date.isoformat() if self.status.start_date else None,
            "end_date": self.status.end_date.isoformat() if self.status.end_date else None,
        }


def evaluate_medications(prescriptions: Iterable, today, indefinite_as_active: bool = False) -> list[MedicationView]:
    views = []
    for prescription in prescriptions:
        for medicine in getattr(prescription, "medicines", None) or []:
            status = medicine_status(medicine, prescription, today, indefinite_as_active)
            views.append(MedicationView(medicine, prescription, status))
    return views


def _active_sort_key(view: MedicationView):
    remaining = view.status.remaining_days
    # indefinite (None) sorts after every finite countdown
    return (remaining is None, remaining if remaining is not None else 0)


def _completed_sort_key(view: MedicationView):
    start = view.status.start_date
    return (start is None, -start.toordinal() if start else 0)


def group_medications(prescriptions: Iterable, today, indefinite_as_active: bool = False) -> dict:
    """
    Partition every medicine of every prescription into active and completed.

    Active is ordered most urgent first; completed is ordered by start
    date, most recent first. Entries are not merged by drug name.
    """
    active, completed = [], []
    for view in evaluate_medications(prescriptions, today, indefinite_as_active):
        (active if view.status.is_active else completed).append(view)
    active.sort(key=_active_sort_key)
    completed.sort(key=_completed_sort_key)
    return {"active": active, "completed": completed}


def dashboard_summary(prescriptions, today, indefinite_as_active: bool = False) -> dict:
    prescriptions = list(prescriptions)
    active_count = sum(
        1 for view in evaluate_medications(prescriptions, today, indefinite_as_active)
        if view.status.is_active
    )
    return {
        "total_prescriptions": len(prescriptions),
        "active_medications": active_count,
    }
