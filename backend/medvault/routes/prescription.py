"""
Prescription routes – upload with AI extraction and duplicate detection,
listing, and file download. Every query is scoped to the current user;
the duplicate check is not.
"""

from flask import Blueprint, current_app, request, jsonify, send_file

from medvault.database import db
from medvault.errors import MedVaultError, ValidationError
from medvault.middleware.auth_middleware import get_current_user
from medvault.models.models import Prescription
from medvault.services.extraction_service import extract_medicines
from medvault.services.ledger import HashLedger
from medvault.services.storage import get_storage
from medvault.services.upload_service import (
    PrescriptionUpload,
    PrescriptionUploader,
    UploadState,
)

prescription_bp = Blueprint("prescription", __name__)

_STATUS_BY_STATE = {
    UploadState.DONE: 201,
    UploadState.REJECTED: 409,
    UploadState.FAILED: 502,
}


def get_extractor():
    """Extraction collaborator; overridable via app.config["EXTRACTOR"]."""
    return current_app.config.get("EXTRACTOR") or extract_medicines


@prescription_bp.route("/", methods=["POST"])
def upload_prescription():
    """
    Upload a prescription document.

    Multipart form: doctor_name, date, notes (optional), file.
    201 with the stored record, 409 if already registered by anyone,
    400 on invalid input, 502 on storage/ledger failure.
    """
    user = get_current_user()
    file = request.files.get("file")
    upload = PrescriptionUpload(
        doctor_name=request.form.get("doctor_name", ""),
        prescription_date=request.form.get("date", ""),
        notes=request.form.get("notes", ""),
        filename=file.filename if file else "",
        mime_type=file.mimetype if file else "",
        data=file.read() if file else b"",
    )

    uploader = PrescriptionUploader(storage=get_storage(), extractor=get_extractor())
    try:
        outcome = uploader.upload(user, upload)
    except ValidationError as exc:
        return jsonify({"error": exc.message}), exc.status_code

    body = {
        "status": outcome.state.value,
        "message": outcome.message,
        "content_hash": outcome.content_hash,
    }
    if outcome.state is UploadState.DONE:
        body["prescription"] = outcome.prescription.to_dict()
    else:
        body["error"] = outcome.message
    return jsonify(body), _STATUS_BY_STATE[outcome.state]


@prescription_bp.route("/", methods=["GET"])
def list_prescriptions():
    """The current user's prescriptions, newest first."""
    user = get_current_user()
    prescriptions = (
        Prescription.query
        .filter_by(user_id=user.id)
        .order_by(Prescription.created_at.desc(), Prescription.id.desc())
        .all()
    )
    return jsonify({"prescriptions": [p.to_dict() for p in prescriptions]}), 200


def _owned_prescription(prescription_id: int):
    prescription = db.session.get(Prescription, prescription_id)
    if not prescription or prescription.user_id != get_current_user().id:
        return None
    return prescription


@prescription_bp.route("/<int:prescription_id>", methods=["GET"])
def get_prescription(prescription_id):
    prescription = _owned_prescription(prescription_id)
    if not prescription:
        return jsonify({"error": "Prescription not found."}), 404
    return jsonify({"prescription": prescription.to_dict()}), 200


@prescription_bp.route("/<int:prescription_id>/file", methods=["GET"])
def download_prescription_file(prescription_id):
    prescription = _owned_prescription(prescription_id)
    if not prescription:
        return jsonify({"error": "Prescription not found."}), 404
    try:
        path = get_storage().path(prescription.file_reference)
    except MedVaultError as exc:
        return jsonify({"error": exc.message}), 404
    return send_file(
        path,
        mimetype=prescription.mime_type,
        download_name=prescription.original_filename or path.name,
    )


@prescription_bp.route("/verify-hash", methods=["POST"])
def verify_hash():
    """Body: {"hash": "<64 hex chars>"} → whether anyone registered it."""
    data = request.get_json(force=True, silent=True) or {}
    content_hash = (data.get("hash") or "").strip().lower()
    try:
        exists = HashLedger().check_exists(content_hash, get_current_user())
    except MedVaultError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    return jsonify({
        "exists": exists,
        "message": "This prescription has already been registered." if exists else None,
    }), 200
