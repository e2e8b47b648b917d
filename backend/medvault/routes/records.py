"""
Record-keeping routes – lab tests, bills and appointments.
"""

import re

from flask import Blueprint, request, jsonify

from medvault.database import db
from medvault.errors import MedVaultError
from medvault.middleware.auth_middleware import get_current_user
from medvault.models.models import Appointment, Bill, LabTest
from medvault.services.normalization import clean_text, parse_date
from medvault.services.records_service import create_bill, create_lab_test
from medvault.services.storage import get_storage

lab_tests_bp = Blueprint("lab_tests", __name__)
bills_bp = Blueprint("bills", __name__)
appointments_bp = Blueprint("appointments", __name__)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _uploaded_file():
    file = request.files.get("file")
    if not file:
        return b"", ""
    return file.read(), file.filename or ""


# ── Lab tests ──────────────────────────────────────────────

@lab_tests_bp.route("/", methods=["GET"])
def list_lab_tests():
    tests = (
        LabTest.query
        .filter_by(user_id=get_current_user().id)
        .order_by(LabTest.test_date.desc(), LabTest.id.desc())
        .all()
    )
    return jsonify({"lab_tests": [t.to_dict() for t in tests]}), 200


@lab_tests_bp.route("/", methods=["POST"])
def add_lab_test():
    """Multipart form: test_name, test_type, test_date, laboratory_name, referring_doctor, notes, file."""
    data, filename = _uploaded_file()
    try:
        record = create_lab_test(get_current_user(), request.form, data, filename, get_storage())
    except MedVaultError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    return jsonify({"lab_test": record.to_dict()}), 201


# ── Bills ──────────────────────────────────────────────────

@bills_bp.route("/", methods=["GET"])
def list_bills():
    bills = (
        Bill.query
        .filter_by(user_id=get_current_user().id)
        .order_by(Bill.created_at.desc(), Bill.id.desc())
        .all()
    )
    return jsonify({"bills": [b.to_dict() for b in bills]}), 200


@bills_bp.route("/", methods=["POST"])
def add_bill():
    """Multipart form: title, hospital, amount, date, file."""
    data, filename = _uploaded_file()
    try:
        record = create_bill(get_current_user(), request.form, data, filename, get_storage())
    except MedVaultError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    return jsonify({"bill": record.to_dict()}), 201


# ── Appointments ───────────────────────────────────────────

@appointments_bp.route("/", methods=["GET"])
def list_appointments():
    appointments = (
        Appointment.query
        .filter_by(user_id=get_current_user().id)
        .order_by(Appointment.appointment_date, Appointment.appointment_time)
        .all()
    )
    return jsonify({"appointments": [a.to_dict() for a in appointments]}), 200


@appointments_bp.route("/", methods=["POST"])
def add_appointment():
    """Body: {"date": "YYYY-MM-DD", "time": "HH:MM", "description": "..."}"""
    data = request.get_json(force=True, silent=True) or {}
    appointment_date = parse_date(data.get("date"))
    time = (data.get("time") or "").strip()
    description = clean_text(data.get("description"))
    if appointment_date is None or not time or not description:
        return jsonify({"error": "Please fill in all the fields."}), 400
    if not _TIME_RE.match(time):
        return jsonify({"error": "Time must be HH:MM (24-hour)."}), 400

    appointment = Appointment(
        user_id=get_current_user().id,
        appointment_date=appointment_date,
        appointment_time=time,
        description=description,
    )
    db.session.add(appointment)
    db.session.commit()
    return jsonify({"appointment": appointment.to_dict()}), 201
