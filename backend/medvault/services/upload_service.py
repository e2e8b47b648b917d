"""
Prescription upload workflow.

    EXTRACTED -> HASH_CHECKING -> UPLOADING -> PERSISTING -> DONE
                       |                           |
                       +--> REJECTED (duplicate)   +--> FAILED (I/O)

Input is validated before any network or storage call. A duplicate is
rejected before the file is stored. The Prescription, its medicines and
the HashRecord are written in one database transaction whose commit is
the commit point; on any failure the transaction is rolled back and the
stored file deleted, so no orphaned file or hash survives.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from medvault.config import Config
from medvault.database import db
from medvault.errors import (
    DuplicatePrescriptionError,
    LedgerError,
    MedVaultError,
    ValidationError,
)
from medvault.models.models import MedicineEntry, Prescription
from medvault.services.dedup_service import compute_content_hash
from medvault.services.extraction_service import ExtractionResult, extract_medicines
from medvault.services.ledger import HashLedger
from medvault.services.normalization import clean_text, normalize_medicines, parse_date

logger = logging.getLogger("medvault.upload")

ALLOWED_MIME_TYPES = {
    "image/jpeg", "image/png", "image/webp", "image/heic", "image/gif", "application/pdf",
}


class UploadState(str, enum.Enum):
    EXTRACTED = "extracted"
    HASH_CHECKING = "hash_checking"
    UPLOADING = "uploading"
    PERSISTING = "persisting"
    DONE = "done"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class PrescriptionUpload:
    """Form fields and file of one upload attempt."""
    doctor_name: str
    prescription_date: str
    filename: str
    mime_type: str
    data: bytes
    notes: str = ""


@dataclass
class UploadOutcome:
    state: UploadState
    message: str = ""
    content_hash: Optional[str] = None
    prescription: Optional[Prescription] = None
    history: list = field(default_factory=list)


def validate_upload(upload: PrescriptionUpload, max_bytes: Optional[int] = None):
    """Reject incomplete or oversized uploads; returns (doctor_name, form_date)."""
    max_bytes = max_bytes if max_bytes is not None else Config.MAX_UPLOAD_MB * 1024 * 1024
    doctor = clean_text(upload.doctor_name)
    if not doctor:
        raise ValidationError("Doctor name is required.")
    form_date = parse_date(upload.prescription_date)
    if form_date is None:
        raise ValidationError("Prescription date is missing or invalid.")
    if not upload.data:
        raise ValidationError("A prescription file is required.")
    if len(upload.data) > max_bytes:
        raise ValidationError(f"File size should not exceed {max_bytes // (1024 * 1024)}MB.")
    if upload.mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(f"Unsupported file type: {upload.mime_type or 'unknown'}.")
    return doctor, form_date


class PrescriptionUploader:
    """Runs one upload attempt; all collaborators are injected."""

    def __init__(
        self,
        storage,
        ledger: Optional[HashLedger] = None,
        extractor: Callable[[bytes, str], ExtractionResult] = extract_medicines,
        session=None,
    ):
        self.storage = storage
        self.ledger = ledger or HashLedger(session)
        self.extractor = extractor
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _extract(self, upload: PrescriptionUpload) -> ExtractionResult:
        try:
            result = self.extractor(upload.data, upload.mime_type)
        except Exception as exc:
            logger.error("Extractor raised: %s", exc)
            return ExtractionResult(error=str(exc))
        return result if isinstance(result, ExtractionResult) else ExtractionResult(error="Invalid extractor result.")

    def upload(self, user, upload: PrescriptionUpload) -> UploadOutcome:
        if user is None:
            raise PermissionError("Uploads require an authenticated user.")
        doctor_name, form_date = validate_upload(upload)
        history = []

        extraction = self._extract(upload)
        if extraction.error:
            logger.warning("Extraction unavailable for upload by user %s: %s", user.id, extraction.error)
        medicines = normalize_medicines(extraction.medicines)
        history.append(UploadState.EXTRACTED)

        content_hash = compute_content_hash(doctor_name, form_date, medicines)
        history.append(UploadState.HASH_CHECKING)
        try:
            exists = self.ledger.check_exists(content_hash, user)
        except LedgerError as exc:
            history.append(UploadState.FAILED)
            return UploadOutcome(UploadState.FAILED, exc.message, content_hash, history=history)
        if exists:
            logger.info("Rejected duplicate prescription %s from user %s", content_hash[:12], user.id)
            history.append(UploadState.REJECTED)
            return UploadOutcome(
                UploadState.REJECTED, DuplicatePrescriptionError.public_message, content_hash, history=history
            )

        history.append(UploadState.UPLOADING)
        try:
            reference = self.storage.save(upload.data, upload.filename, "prescriptions", user.id)
        except MedVaultError as exc:
            history.append(UploadState.FAILED)
            return UploadOutcome(UploadState.FAILED, exc.message, content_hash, history=history)

        history.append(UploadState.PERSISTING)
        prescription = Prescription(
            user_id=user.id,
            doctor_name=doctor_name,
            hospital_name=clean_text(extraction.hospital_name),
            form_date=form_date,
            extracted_date=parse_date(extraction.prescription_date),
            notes=clean_text(upload.notes),
            file_reference=reference,
            original_filename=upload.filename,
            mime_type=upload.mime_type,
            content_hash=content_hash,
            extraction_error=extraction.error,
            medicines=[
                MedicineEntry(
                    position=index,
                    medicine_name=med.medicine_name,
                    dosage=med.dosage,
                    frequency=med.frequency,
                    duration_kind=med.duration.kind,
                    duration_days=med.duration.days,
                    duration_text=med.duration.text or None,
                    prescribed_date=med.prescribed_date,
                )
                for index, med in enumerate(medicines)
            ],
        )

        try:
            self.session.add(prescription)
            self.session.flush()
            self.ledger.register(content_hash, user)
            self.session.commit()
        except (DuplicatePrescriptionError, IntegrityError):
            # lost a race on hash_records.hash, at flush or at commit
            self._abort(reference)
            history.append(UploadState.REJECTED)
            return UploadOutcome(
                UploadState.REJECTED, DuplicatePrescriptionError.public_message, content_hash, history=history
            )
        except (MedVaultError, SQLAlchemyError) as exc:
            logger.error("Persisting prescription %s failed: %s", content_hash[:12], exc)
            self._abort(reference)
            history.append(UploadState.FAILED)
            return UploadOutcome(UploadState.FAILED, LedgerError.public_message, content_hash, history=history)

        history.append(UploadState.DONE)
        logger.info(
            "Registered prescription %s (%d medicines) for user %s",
            prescription.id, len(medicines), user.id,
        )
        return UploadOutcome(
            UploadState.DONE, "Prescription uploaded successfully.", content_hash, prescription, history
        )

    def _abort(self, reference: str) -> None:
        self.session.rollback()
        self.storage.delete(reference)
