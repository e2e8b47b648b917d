"""
Hash ledger – the global registry of prescription content hashes.

The unique constraint on hash_records.hash is the authority on
uniqueness. check_exists() is only a fast path to avoid wasted uploads;
two concurrent uploads can both see "not found", and the loser is caught
by the constraint when its transaction commits.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from medvault.database import db
from medvault.errors import DuplicatePrescriptionError, LedgerError, ValidationError
from medvault.models.models import HashRecord
from medvault.services.dedup_service import is_valid_hash

logger = logging.getLogger("medvault.ledger")


class HashLedger:
    """Database-backed ledger. Callers own the surrounding transaction."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def check_exists(self, content_hash: str, user) -> bool:
        """
        Whether the hash is already registered by anyone. Requires an
        authenticated user, but never filters by that user.
        """
        if user is None:
            raise PermissionError("Ledger lookups require an authenticated user.")
        if not is_valid_hash(content_hash):
            raise ValidationError("Invalid prescription hash.")
        try:
            found = (
                self.session.query(HashRecord.id)
                .filter(HashRecord.hash == content_hash)
                .first()
            )
        except SQLAlchemyError as exc:
            logger.error("Ledger lookup failed: %s", exc)
            raise LedgerError() from exc
        return found is not None

    def register(self, content_hash: str, user) -> HashRecord:
        """
        Stage a HashRecord inside the current transaction and flush it so
        the unique constraint is checked now. Nothing is durable until the
        caller commits; on any error the caller must roll back.
        """
        if not is_valid_hash(content_hash):
            raise ValidationError("Invalid prescription hash.")
        record = HashRecord(hash=content_hash, registered_by_user_id=getattr(user, "id", None))
        try:
            self.session.add(record)
            self.session.flush()
        except IntegrityError as exc:
            logger.info("Hash %s already registered (constraint).", content_hash[:12])
            raise DuplicatePrescriptionError() from exc
        except SQLAlchemyError as exc:
            logger.error("Ledger registration failed: %s", exc)
            raise LedgerError() from exc
        return record
