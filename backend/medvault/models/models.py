"""
SQLAlchemy ORM models for patient records.
A Prescription owns its MedicineEntry rows; HashRecord is the global
deduplication ledger and carries the unique constraint on content hashes.
"""

from datetime import datetime, timezone

from medvault.database import db
from medvault.services.normalization import Duration


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=False)
    date_of_birth = db.Column(db.Date)
    weight_kg = db.Column(db.Float)
    height_cm = db.Column(db.Float)
    blood_group = db.Column(db.String(5))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "date_of_birth": _iso(self.date_of_birth),
            "weight_kg": self.weight_kg,
            "height_cm": self.height_cm,
            "blood_group": self.blood_group,
            "is_active": self.is_active,
            "updated_at": _iso(self.updated_at),
        }


class Prescription(db.Model):
    __tablename__ = "prescriptions"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    doctor_name = db.Column(db.String(255), nullable=False)
    hospital_name = db.Column(db.String(255))
    form_date = db.Column(db.Date, nullable=False)       # user-entered, fallback only
    extracted_date = db.Column(db.Date)                  # read from the document itself
    notes = db.Column(db.Text)
    file_reference = db.Column(db.String(512), nullable=False)
    original_filename = db.Column(db.String(255))
    mime_type = db.Column(db.String(100))
    content_hash = db.Column(db.String(64), nullable=False, index=True)
    extraction_error = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    medicines = db.relationship(
        "MedicineEntry",
        backref="prescription",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="MedicineEntry.position",
    )

    def to_dict(self, include_medicines=True):
        data = {
            "id": self.id,
            "doctor_name": self.doctor_name,
            "hospital_name": self.hospital_name,
            "form_date": _iso(self.form_date),
            "extracted_date": _iso(self.extracted_date),
            "notes": self.notes,
            "file_reference": self.file_reference,
            "original_filename": self.original_filename,
            "content_hash": self.content_hash,
            "extraction_failed": bool(self.extraction_error),
            "created_at": _iso(self.created_at),
        }
        if include_medicines:
            data["medicines"] = [m.to_dict() for m in self.medicines]
        return data


class MedicineEntry(db.Model):
    __tablename__ = "medicine_entries"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    prescription_id = db.Column(
        db.Integer, db.ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    medicine_name = db.Column(db.String(255), nullable=False)
    dosage = db.Column(db.String(100))
    frequency = db.Column(db.String(100))
    duration_kind = db.Column(db.String(20), nullable=False, default="unknown")  # days | indefinite | unknown
    duration_days = db.Column(db.Integer)
    duration_text = db.Column(db.String(100))
    prescribed_date = db.Column(db.Date)

    @property
    def duration(self) -> Duration:
        return Duration(kind=self.duration_kind, days=self.duration_days, text=self.duration_text or "")

    def to_dict(self):
        return {
            "id": self.id,
            "medicine_name": self.medicine_name,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "duration": self.duration.canonical(),
            "duration_text": self.duration_text,
            "prescribed_date": _iso(self.prescribed_date),
        }


class HashRecord(db.Model):
    """Ledger row; one per distinct content hash across all users."""
    __tablename__ = "hash_records"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    hash = db.Column(db.String(64), nullable=False, unique=True)
    registered_at = db.Column(db.DateTime, default=_utcnow)
    registered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"))  # informational only


class LabTest(db.Model):
    __tablename__ = "lab_tests"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    test_name = db.Column(db.String(255), nullable=False)
    test_type = db.Column(db.String(100), nullable=False)
    laboratory_name = db.Column(db.String(255))
    test_date = db.Column(db.Date, nullable=False)
    referring_doctor = db.Column(db.String(255))
    notes = db.Column(db.Text)
    file_reference = db.Column(db.String(512), nullable=False)
    original_filename = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "test_name": self.test_name,
            "test_type": self.test_type,
            "laboratory_name": self.laboratory_name,
            "test_date": _iso(self.test_date),
            "referring_doctor": self.referring_doctor,
            "notes": self.notes,
            "file_reference": self.file_reference,
            "original_filename": self.original_filename,
            "created_at": _iso(self.created_at),
        }


class Bill(db.Model):
    __tablename__ = "bills"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    hospital = db.Column(db.String(255))
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    bill_date = db.Column(db.Date)
    file_reference = db.Column(db.String(512), nullable=False)
    original_filename = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "hospital": self.hospital,
            "amount": float(self.amount) if self.amount is not None else None,
            "bill_date": _iso(self.bill_date),
            "file_reference": self.file_reference,
            "original_filename": self.original_filename,
            "created_at": _iso(self.created_at),
        }


class Appointment(db.Model):
    __tablename__ = "appointments"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    appointment_date = db.Column(db.Date, nullable=False)
    appointment_time = db.Column(db.String(10), nullable=False)  # HH:MM
    description = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "date": _iso(self.appointment_date),
            "time": self.appointment_time,
            "description": self.description,
        }


class MedicationReminder(db.Model):
    __tablename__ = "medication_reminders"
    __table_args__ = (
        db.UniqueConstraint("medicine_id", "reminder_date", name="uq_reminder_medicine_day"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    medicine_id = db.Column(
        db.Integer, db.ForeignKey("medicine_entries.id", ondelete="CASCADE"), nullable=False
    )
    reminder_date = db.Column(db.Date, nullable=False)
    remaining_days = db.Column(db.Integer, nullable=False)
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    medicine = db.relationship("MedicineEntry", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "medicine_id": self.medicine_id,
            "medicine_name": self.medicine.medicine_name if self.medicine else None,
            "reminder_date": _iso(self.reminder_date),
            "remaining_days": self.remaining_days,
            "is_read": self.is_read,
        }


class AuditLog(db.Model):
    __tablename__ = "audit_log"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    endpoint = db.Column(db.String(255))
    method = db.Column(db.String(10))
    request_body = db.Column(db.Text)
    response_summary = db.Column(db.Text)
    status_code = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=_utcnow)
