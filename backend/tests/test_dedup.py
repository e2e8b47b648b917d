"""
Prescription deduplication tests – content hash contract and the
database-backed hash ledger.
"""

from datetime import date

import pytest

from medvault.errors import DuplicatePrescriptionError, ValidationError
from medvault.models.models import HashRecord
from medvault.services.dedup_service import (
    canonical_payload,
    compare_prescriptions,
    compute_content_hash,
    is_valid_hash,
)
from medvault.services.ledger import HashLedger
from medvault.services.normalization import MedicineData, normalize_medicines, parse_duration


AMOX = {"medicine_name": "Amoxicillin", "dosage": "500mg", "frequency": "twice daily", "duration": 7}
FILLER = {"medicine_name": "Paracetamol", "dosage": "650mg", "frequency": "thrice daily", "duration": 3}


def _hash(doctor="Dr. Smith", day="2024-01-01", medicines=None):
    return compute_content_hash(doctor, day, medicines if medicines is not None else [AMOX, FILLER])


# ═══════════════════════════════════════════
# HASH CONTRACT
# ═══════════════════════════════════════════

class TestContentHash:
    def test_fixed_length_hex(self):
        h = _hash()
        assert len(h) == 64
        assert is_valid_hash(h)

    def test_stable_across_calls(self):
        assert _hash() == _hash()

    def test_doctor_name_case_and_whitespace(self):
        assert _hash(doctor="Dr. Smith") == _hash(doctor="dr. smith ") == _hash(doctor="  DR.  SMITH")

    def test_medicine_order_does_not_matter(self):
        assert _hash(medicines=[AMOX, FILLER]) == _hash(medicines=[FILLER, AMOX])

    def test_medicine_fields_case_insensitive(self):
        shouting = {k: v.upper() if isinstance(v, str) else v for k, v in AMOX.items()}
        assert _hash(medicines=[shouting, FILLER]) == _hash()

    def test_date_representations_are_canonical(self):
        assert _hash(day="2024-01-01") == _hash(day=date(2024, 1, 1)) == _hash(day="01/01/2024")

    def test_duration_representations_are_canonical(self):
        as_text = dict(AMOX, duration="7 days")
        assert _hash(medicines=[as_text, FILLER]) == _hash()

    def test_orm_like_objects_hash_like_dicts(self):
        objects = normalize_medicines([
            {"medicineName": "Paracetamol", "dosage": "650mg", "frequency": "TDS", "duration": "3"},
            {"medicineName": "Amoxicillin", "dosage": "500MG", "frequency": "BD", "duration": 7},
        ])
        assert _hash(medicines=objects) == _hash()

    @pytest.mark.parametrize("field,value", [
        ("medicine_name", "Amoxycillin"),
        ("dosage", "250mg"),
        ("frequency", "thrice daily"),
        ("duration", 5),
    ])
    def test_any_medicine_change_changes_hash(self, field, value):
        changed = dict(AMOX, **{field: value})
        assert _hash(medicines=[changed, FILLER]) != _hash()

    def test_doctor_and_date_changes_change_hash(self):
        assert _hash(doctor="Dr. Jones") != _hash()
        assert _hash(day="2024-01-02") != _hash()

    def test_missing_vs_present_optional_field(self):
        without_dosage = dict(AMOX, dosage=None)
        empty_dosage = dict(AMOX, dosage="  ")
        assert _hash(medicines=[without_dosage]) == _hash(medicines=[empty_dosage])
        assert _hash(medicines=[without_dosage]) != _hash(medicines=[AMOX])

    def test_same_name_twice_is_order_independent(self):
        a = dict(AMOX, dosage="250mg")
        b = dict(AMOX, dosage="500mg")
        assert _hash(medicines=[a, b]) == _hash(medicines=[b, a])

    def test_empty_medicine_list(self):
        assert _hash(medicines=[]) == _hash(medicines=[])
        assert _hash(medicines=[]) != _hash()

    def test_owner_and_timestamps_are_ignored(self):
        owned = [dict(AMOX, uid="user-1", createdAt="2024-05-01"), FILLER]
        assert _hash(medicines=owned) == _hash()

    def test_payload_is_sorted_compact_json(self):
        payload = canonical_payload("Dr. Smith", "2024-01-01", [FILLER, AMOX])
        assert payload.startswith('{"date":"2024-01-01","doctor_name":"dr. smith","medicines":[{')
        assert payload.index("amoxicillin") < payload.index("paracetamol")
        assert ", " not in payload and ": " not in payload

    def test_indefinite_duration_participates(self):
        a = MedicineData("Insulin", duration=parse_duration("until finished"))
        b = MedicineData("Insulin", duration=parse_duration(None))
        assert compute_content_hash("Dr. A", "2024-01-01", [a]) != compute_content_hash("Dr. A", "2024-01-01", [b])

    @pytest.mark.parametrize("doctor,day", [("", "2024-01-01"), ("Dr. A", ""), ("Dr. A", "someday")])
    def test_invalid_inputs_raise_validation_error(self, doctor, day):
        with pytest.raises(ValidationError):
            compute_content_hash(doctor, day, [])

    def test_compare_prescriptions(self):
        p1 = {"doctor_name": "Dr. Smith", "date": "2024-01-01", "medicines": [AMOX, FILLER]}
        p2 = {"doctor_name": "dr. smith ", "date": "2024-01-01", "medicines": [FILLER, AMOX]}
        p3 = {"doctor_name": "dr. smith", "date": "2024-01-01", "medicines": [AMOX]}
        assert compare_prescriptions(p1, p2)
        assert not compare_prescriptions(p1, p3)


@pytest.mark.parametrize("value,valid", [
    ("a" * 64, True),
    ("A" * 64, False),
    ("a" * 63, False),
    ("g" * 64, False),
    (None, False),
])
def test_is_valid_hash(value, valid):
    assert is_valid_hash(value) is valid


# ═══════════════════════════════════════════
# LEDGER
# ═══════════════════════════════════════════

class TestHashLedger:
    def test_unknown_hash(self, user):
        assert HashLedger().check_exists(_hash(), user) is False

    def test_register_then_exists(self, db_session, user):
        ledger = HashLedger()
        ledger.register(_hash(), user)
        db_session.commit()
        assert ledger.check_exists(_hash(), user) is True

    def test_lookup_is_global_across_users(self, db_session, user, other_user):
        ledger = HashLedger()
        ledger.register(_hash(), user)
        db_session.commit()
        assert ledger.check_exists(_hash(), other_user) is True

    def test_registering_user_is_informational(self, db_session, user):
        HashLedger().register(_hash(), user)
        db_session.commit()
        record = HashRecord.query.filter_by(hash=_hash()).one()
        assert record.registered_by_user_id == user.id

    def test_second_registration_hits_unique_constraint(self, db_session, user, other_user):
        ledger = HashLedger()
        ledger.register(_hash(), user)
        db_session.commit()
        with pytest.raises(DuplicatePrescriptionError):
            ledger.register(_hash(), other_user)
        db_session.rollback()
        assert HashRecord.query.count() == 1

    def test_lookup_requires_identity(self, db_session):
        with pytest.raises(PermissionError):
            HashLedger().check_exists(_hash(), None)

    def test_malformed_hash_rejected(self, user):
        with pytest.raises(ValidationError):
            HashLedger().check_exists("not-a-hash", user)
