"""
Dashboard route – summary counts, the most urgent active medicines,
upcoming appointments, recent lab tests and unread reminders.
"""

from datetime import date

from flask import Blueprint, jsonify

from medvault.middleware.auth_middleware import get_current_user
from medvault.models.models import Appointment, LabTest
from medvault.routes.medicines import user_prescriptions
from medvault.services.medication_status import dashboard_summary, group_medications
from medvault.services.reminder_service import mark_read, unread_reminders

dashboard_bp = Blueprint("dashboard", __name__)


def _today() -> date:
    return date.today()


@dashboard_bp.route("/", methods=["GET"])
def get_dashboard():
    user = get_current_user()
    today = _today()
    prescriptions = user_prescriptions(user)

    appointments = (
        Appointment.query
        .filter(Appointment.user_id == user.id, Appointment.appointment_date >= today)
        .order_by(Appointment.appointment_date, Appointment.appointment_time)
        .limit(3)
        .all()
    )
    lab_tests = (
        LabTest.query
        .filter_by(user_id=user.id)
        .order_by(LabTest.created_at.desc(), LabTest.id.desc())
        .limit(3)
        .all()
    )

    return jsonify({
        "user": user.to_dict(),
        "stats": dashboard_summary(prescriptions, today),
        "active_medications": [v.to_dict() for v in group_medications(prescriptions, today)["active"][:3]],
        "upcoming_appointments": [a.to_dict() for a in appointments],
        "recent_lab_tests": [t.to_dict() for t in lab_tests],
        "reminders": [r.to_dict() for r in unread_reminders(user)],
    }), 200


@dashboard_bp.route("/reminders/<int:reminder_id>/read", methods=["POST"])
def read_reminder(reminder_id):
    if not mark_read(get_current_user(), reminder_id):
        return jsonify({"error": "Reminder not found."}), 404
    return jsonify({"status": "ok"}), 200
