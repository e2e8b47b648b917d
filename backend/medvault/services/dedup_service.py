"""
Prescription content hashing.

Two prescriptions with the same clinical content hash identically no
matter who uploaded them, when, or in what order the medicines were
listed. Hashing is over normalized semantic fields (doctor, date,
medicines), not over the image bytes, so two different scans of the same
prescription are caught as duplicates.
"""

import hashlib
import json
from typing import Iterable, Optional

from medvault.errors import ValidationError
from medvault.services.normalization import normalize_text, parse_date, parse_duration


def _optional_text(value) -> Optional[str]:
    text = normalize_text(value)
    return text or None


def canonical_medicine(medicine) -> dict:
    """Reduce a medicine (ORM row, MedicineData or raw dict) to its hashed fields."""
    if isinstance(medicine, dict):
        get = medicine.get
    else:
        def get(key):
            return getattr(medicine, key, None)
    return {
        "medicine_name": normalize_text(get("medicine_name")),
        "dosage": _optional_text(get("dosage")),
        "frequency": _optional_text(get("frequency")),
        "duration": parse_duration(get("duration")).canonical(),
    }


def _sort_key(entry: dict):
    duration = entry["duration"]
    return (
        entry["medicine_name"],
        entry["dosage"] or "",
        entry["frequency"] or "",
        "" if duration is None else str(duration),
    )


def canonical_payload(doctor_name, prescription_date, medicines: Iterable) -> str:
    """Deterministic JSON serialization of the hashed fields."""
    day = parse_date(prescription_date)
    if day is None:
        raise ValidationError("Prescription date is missing or invalid.")
    doctor = normalize_text(doctor_name)
    if not doctor:
        raise ValidationError("Doctor name is required.")

    entries = sorted((canonical_medicine(m) for m in medicines or []), key=_sort_key)
    payload = {
        "doctor_name": doctor,
        "date": day.isoformat(),
        "medicines": entries,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_content_hash(doctor_name, prescription_date, medicines: Iterable) -> str:
    """SHA-256 hex digest (64 chars) identifying a prescription's content."""
    payload = canonical_payload(doctor_name, prescription_date, medicines)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compare_prescriptions(first: dict, second: dict) -> bool:
    """True when two prescription dicts carry the same clinical content."""
    return compute_content_hash(
        first.get("doctor_name"), first.get("date"), first.get("medicines")
    ) == compute_content_hash(
        second.get("doctor_name"), second.get("date"), second.get("medicines")
    )


def is_valid_hash(value) -> bool:
    if not isinstance(value, str) or len(value) != 64:
        return False
    return all(c in "0123456789abcdef" for c in value)
