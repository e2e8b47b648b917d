"""
Profile routes – the patient's personal and physical details.
"""

import math

from flask import Blueprint, request, jsonify

from medvault.database import db
from medvault.middleware.auth_middleware import get_current_user
from medvault.services.normalization import clean_text, parse_date

profile_bp = Blueprint("profile", __name__)

BLOOD_GROUPS = {"A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"}


def _positive_number(value, field_name):
    if value in (None, ""):
        return None, None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None, f"{field_name} must be a number."
    if not math.isfinite(number) or number <= 0:
        return None, f"{field_name} must be a positive number."
    return number, None


def _profile_changes(data: dict):
    """Validate every field first; returns (changes, error)."""
    changes = {}

    if "full_name" in data:
        name = clean_text(data.get("full_name"))
        if not name:
            return None, "Name cannot be empty."
        changes["full_name"] = name

    if "date_of_birth" in data:
        if data["date_of_birth"] in (None, ""):
            changes["date_of_birth"] = None
        else:
            dob = parse_date(data["date_of_birth"])
            if dob is None:
                return None, "Invalid date of birth."
            changes["date_of_birth"] = dob

    for field_name in ("weight_kg", "height_cm"):
        if field_name in data:
            number, error = _positive_number(data[field_name], field_name)
            if error:
                return None, error
            changes[field_name] = number

    if "blood_group" in data:
        group = str(data.get("blood_group") or "").strip().upper() or None
        if group is not None and group not in BLOOD_GROUPS:
            return None, "Unknown blood group."
        changes["blood_group"] = group

    return changes, None


@profile_bp.route("/", methods=["GET"])
def get_profile():
    return jsonify({"profile": get_current_user().to_dict()}), 200


@profile_bp.route("/", methods=["PUT"])
def update_profile():
    """Body: any of full_name, date_of_birth, weight_kg, height_cm, blood_group."""
    data = request.get_json(force=True, silent=True) or {}
    changes, error = _profile_changes(data)
    if error:
        return jsonify({"error": error}), 400

    user = get_current_user()
    for field_name, value in changes.items():
        setattr(user, field_name, value)
    db.session.commit()
    return jsonify({"profile": user.to_dict()}), 200
