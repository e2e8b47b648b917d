"""
Medication routes – the current user's medicines grouped into active
and completed courses, with days remaining.
"""

from datetime import date

from flask import Blueprint, request, jsonify

from medvault.middleware.auth_middleware import get_current_user
from medvault.models.models import Prescription
from medvault.services.medication_status import group_medications

medicines_bp = Blueprint("medicines", __name__)

_TRUTHY = ("1", "true", "yes")


def _today() -> date:
    return date.today()


def user_prescriptions(user):
    return (
        Prescription.query
        .filter_by(user_id=user.id)
        .order_by(Prescription.created_at.desc(), Prescription.id.desc())
        .all()
    )


@medicines_bp.route("/", methods=["GET"])
def list_medicines():
    """
    Query params:
        include_indefinite – treat "until finished"-style courses as active.
    """
    include_indefinite = request.args.get("include_indefinite", "").lower() in _TRUTHY
    groups = group_medications(
        user_prescriptions(get_current_user()),
        _today(),
        indefinite_as_active=include_indefinite,
    )
    return jsonify({
        "active": [v.to_dict() for v in groups["active"]],
        "completed": [v.to_dict() for v in groups["completed"]],
    }), 200
