"""
Upload workflow tests – state transitions, duplicate rejection before any
write, and rollback with no orphaned file or hash on failure.
"""

from datetime import date
from pathlib import Path

import pytest

from medvault.errors import DuplicatePrescriptionError, LedgerError, StorageError, ValidationError
from medvault.models.models import HashRecord, MedicineEntry, Prescription
from medvault.services.extraction_service import ExtractionResult
from medvault.services.ledger import HashLedger
from medvault.services.upload_service import (
    PrescriptionUpload,
    PrescriptionUploader,
    UploadState,
    validate_upload,
)

RAW_MEDICINES = [
    {"medicineName": "Paracetamol", "dosage": "650mg", "frequency": "TDS", "duration": "3"},
    {"medicineName": "Amoxicillin", "dosage": "500mg", "frequency": "BD", "duration": 7,
     "prescribedDate": "2024-01-02"},
]


def _extractor(result):
    def extract(image_bytes, mime_type):
        return result
    return extract


def _upload(doctor="Dr. Smith", day="2024-01-01", data=b"image-bytes", mime="image/png"):
    return PrescriptionUpload(
        doctor_name=doctor,
        prescription_date=day,
        filename="rx.png",
        mime_type=mime,
        data=data,
        notes="after food",
    )


class RecordingStorage:
    """In-memory storage that remembers what was saved and deleted."""

    def __init__(self, fail=False):
        self.files = {}
        self.deleted = []
        self.fail = fail

    def save(self, data, filename, area, user_id):
        if self.fail:
            raise StorageError()
        reference = f"{area}/{user_id}/{len(self.files)}-{filename}"
        self.files[reference] = data
        return reference

    def delete(self, reference):
        self.deleted.append(reference)
        self.files.pop(reference, None)


class FailingRegisterLedger(HashLedger):
    def register(self, content_hash, user):
        raise LedgerError("network error")


class RacingLedger(HashLedger):
    """Reports 'not found', then loses the race at registration."""

    def check_exists(self, content_hash, user):
        return False

    def register(self, content_hash, user):
        raise DuplicatePrescriptionError()


class CommitTimeConflictLedger(HashLedger):
    """Stages two rows for the same hash so the conflict surfaces at commit."""

    def check_exists(self, content_hash, user):
        return False

    def register(self, content_hash, user):
        self.session.add(HashRecord(hash=content_hash))
        self.session.add(HashRecord(hash=content_hash))


def _uploader(storage, extraction=None, ledger=None):
    return PrescriptionUploader(
        storage=storage,
        ledger=ledger,
        extractor=_extractor(extraction or ExtractionResult(medicines=list(RAW_MEDICINES), hospital_name="City Clinic")),
    )


# ═══════════════════════════════════════════
# HAPPY PATH
# ═══════════════════════════════════════════

class TestSuccessfulUpload:
    def test_persists_prescription_medicines_and_hash(self, db_session, user):
        storage = RecordingStorage()
        outcome = _uploader(storage).upload(user, _upload())

        assert outcome.state is UploadState.DONE
        assert outcome.history == [
            UploadState.EXTRACTED, UploadState.HASH_CHECKING, UploadState.UPLOADING,
            UploadState.PERSISTING, UploadState.DONE,
        ]
        rx = Prescription.query.one()
        assert rx.user_id == user.id
        assert rx.hospital_name == "City Clinic"
        assert rx.form_date == date(2024, 1, 1)
        assert rx.content_hash == outcome.content_hash
        assert [m.medicine_name for m in rx.medicines] == ["Paracetamol", "Amoxicillin"]
        assert rx.medicines[0].frequency == "thrice daily"
        assert rx.medicines[1].prescribed_date == date(2024, 1, 2)
        assert HashRecord.query.filter_by(hash=outcome.content_hash).count() == 1
        assert rx.file_reference in storage.files

    def test_extraction_failure_still_saves(self, db_session, user):
        storage = RecordingStorage()
        outcome = _uploader(storage, ExtractionResult(error="timeout")).upload(user, _upload())
        assert outcome.state is UploadState.DONE
        rx = Prescription.query.one()
        assert rx.medicines == []
        assert rx.to_dict()["extraction_failed"] is True

    def test_raising_extractor_is_recovered(self, db_session, user):
        def boom(image_bytes, mime_type):
            raise RuntimeError("model unavailable")

        uploader = PrescriptionUploader(storage=RecordingStorage(), extractor=boom)
        assert uploader.upload(user, _upload()).state is UploadState.DONE

    def test_extracted_document_date_is_kept(self, db_session, user):
        extraction = ExtractionResult(medicines=[], prescription_date="2023-12-30")
        _uploader(RecordingStorage(), extraction).upload(user, _upload())
        assert Prescription.query.one().extracted_date == date(2023, 12, 30)


# ═══════════════════════════════════════════
# DUPLICATES
# ═══════════════════════════════════════════

class TestDuplicateRejection:
    def test_duplicate_writes_nothing(self, db_session, user):
        _uploader(RecordingStorage()).upload(user, _upload())

        storage = RecordingStorage()
        outcome = _uploader(storage).upload(user, _upload(doctor="  dr. SMITH"))

        assert outcome.state is UploadState.REJECTED
        assert "already been registered" in outcome.message
        assert storage.files == {}
        assert Prescription.query.count() == 1
        assert HashRecord.query.count() == 1

    def test_duplicate_detected_across_users(self, db_session, user, other_user):
        _uploader(RecordingStorage()).upload(user, _upload())
        outcome = _uploader(RecordingStorage()).upload(other_user, _upload())
        assert outcome.state is UploadState.REJECTED
        assert Prescription.query.filter_by(user_id=other_user.id).count() == 0

    def test_medicine_order_from_extractor_does_not_matter(self, db_session, user):
        _uploader(RecordingStorage()).upload(user, _upload())
        reversed_extraction = ExtractionResult(medicines=list(reversed(RAW_MEDICINES)))
        outcome = _uploader(RecordingStorage(), reversed_extraction).upload(user, _upload())
        assert outcome.state is UploadState.REJECTED

    def test_different_content_is_accepted(self, db_session, user):
        _uploader(RecordingStorage()).upload(user, _upload())
        outcome = _uploader(RecordingStorage()).upload(user, _upload(day="2024-02-01"))
        assert outcome.state is UploadState.DONE
        assert Prescription.query.count() == 2

    def test_lost_race_rolls_back(self, db_session, user):
        storage = RecordingStorage()
        outcome = _uploader(storage, ledger=RacingLedger()).upload(user, _upload())
        assert outcome.state is UploadState.REJECTED
        assert Prescription.query.count() == 0
        assert MedicineEntry.query.count() == 0
        assert storage.files == {}
        assert len(storage.deleted) == 1

    def test_conflict_at_commit_is_rejected(self, db_session, user):
        storage = RecordingStorage()
        outcome = _uploader(storage, ledger=CommitTimeConflictLedger()).upload(user, _upload())
        assert outcome.state is UploadState.REJECTED
        assert outcome.history[-1] is UploadState.REJECTED
        assert Prescription.query.count() == 0
        assert HashRecord.query.count() == 0
        assert storage.files == {}


# ═══════════════════════════════════════════
# FAILURES
# ═══════════════════════════════════════════

class TestFailures:
    def test_register_failure_leaves_no_prescription(self, db_session, user):
        storage = RecordingStorage()
        outcome = _uploader(storage, ledger=FailingRegisterLedger()).upload(user, _upload())

        assert outcome.state is UploadState.FAILED
        assert outcome.history[-2:] == [UploadState.PERSISTING, UploadState.FAILED]
        assert Prescription.query.count() == 0
        assert MedicineEntry.query.count() == 0
        assert HashRecord.query.count() == 0
        assert storage.files == {}

    def test_retry_after_failure_succeeds(self, db_session, user):
        _uploader(RecordingStorage(), ledger=FailingRegisterLedger()).upload(user, _upload())
        outcome = _uploader(RecordingStorage()).upload(user, _upload())
        assert outcome.state is UploadState.DONE

    def test_storage_failure_writes_nothing(self, db_session, user):
        outcome = _uploader(RecordingStorage(fail=True)).upload(user, _upload())
        assert outcome.state is UploadState.FAILED
        assert Prescription.query.count() == 0
        assert HashRecord.query.count() == 0

    def test_real_storage_file_removed_on_failure(self, db_session, user, storage):
        before = set(Path(storage.root).rglob("*.png"))
        _uploader(storage, ledger=FailingRegisterLedger()).upload(user, _upload())
        assert set(Path(storage.root).rglob("*.png")) == before


# ═══════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════

class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        {"doctor": "  "},
        {"day": ""},
        {"day": "31/02/2024"},
        {"data": b""},
        {"mime": "text/plain"},
    ])
    def test_rejected_before_any_io(self, db_session, user, kwargs):
        calls = []

        def extractor(image_bytes, mime_type):
            calls.append(1)
            return ExtractionResult()

        storage = RecordingStorage()
        uploader = PrescriptionUploader(storage=storage, extractor=extractor)
        with pytest.raises(ValidationError):
            uploader.upload(user, _upload(**kwargs))
        assert calls == []
        assert storage.files == {}

    def test_size_limit(self):
        with pytest.raises(ValidationError):
            validate_upload(_upload(data=b"x" * 11), max_bytes=10)

    def test_requires_user(self, db_session):
        with pytest.raises(PermissionError):
            _uploader(RecordingStorage()).upload(None, _upload())
