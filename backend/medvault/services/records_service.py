"""
Lab report and bill records.
Same write discipline as prescriptions: validate first, store the file,
then commit the row; a failed commit removes the stored file.
"""

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import SQLAlchemyError

from medvault.config import Config
from medvault.database import db
from medvault.errors import LedgerError, ValidationError
from medvault.models.models import Bill, LabTest
from medvault.services.normalization import clean_text, parse_date

logger = logging.getLogger("medvault.records")


def _check_file(data: bytes):
    if not data:
        raise ValidationError("A report file is required.")
    max_bytes = Config.MAX_UPLOAD_MB * 1024 * 1024
    if len(data) > max_bytes:
        raise ValidationError(f"File size should not exceed {Config.MAX_UPLOAD_MB}MB.")


def _commit_with_file(record, storage, reference: str):
    try:
        db.session.add(record)
        db.session.commit()
    except SQLAlchemyError as exc:
        logger.error("Saving %s failed: %s", type(record).__name__, exc)
        db.session.rollback()
        storage.delete(reference)
        raise LedgerError() from exc
    return record


def create_lab_test(user, form: dict, data: bytes, filename: str, storage) -> LabTest:
    test_name = clean_text(form.get("test_name"))
    test_type = clean_text(form.get("test_type"))
    test_date = parse_date(form.get("test_date"))
    if not test_name or not test_type or test_date is None:
        raise ValidationError("Please fill in all required fields and upload a report.")
    _check_file(data)

    reference = storage.save(data, filename, "lab_tests", user.id)
    record = LabTest(
        user_id=user.id,
        test_name=test_name,
        test_type=test_type,
        laboratory_name=clean_text(form.get("laboratory_name")),
        test_date=test_date,
        referring_doctor=clean_text(form.get("referring_doctor")),
        notes=clean_text(form.get("notes")),
        file_reference=reference,
        original_filename=filename,
    )
    return _commit_with_file(record, storage, reference)


def parse_amount(value) -> Decimal:
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, AttributeError):
        raise ValidationError("Amount must be a number.")
    if not amount.is_finite() or amount < 0:
        raise ValidationError("Amount must be a non-negative number.")
    return amount.quantize(Decimal("0.01"))


def create_bill(user, form: dict, data: bytes, filename: str, storage) -> Bill:
    title = clean_text(form.get("title"))
    if not title or not clean_text(form.get("amount")):
        raise ValidationError("Bill title, amount and file are required.")
    amount = parse_amount(form.get("amount"))
    bill_date = None
    if clean_text(form.get("date")):
        bill_date = parse_date(form.get("date"))
        if bill_date is None:
            raise ValidationError("Bill date is invalid.")
    _check_file(data)

    reference = storage.save(data, filename, "bills", user.id)
    record = Bill(
        user_id=user.id,
        title=title,
        hospital=clean_text(form.get("hospital")),
        amount=amount,
        bill_date=bill_date,
        file_reference=reference,
        original_filename=filename,
    )
    return _commit_with_file(record, storage, reference)
