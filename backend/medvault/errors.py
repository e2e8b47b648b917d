"""
Error taxonomy for the record services.
Blueprints translate these into HTTP responses; the medication status
engine never raises any of them.
"""


class MedVaultError(Exception):
    """Base class for all service-level failures."""

    status_code = 500
    public_message = "Request failed."

    def __init__(self, message: str = "", status_code: int = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(MedVaultError):
    """Missing or malformed user input, raised before any I/O."""

    status_code = 400
    public_message = "Invalid input."


class AuthenticationError(MedVaultError):
    """Missing, invalid or expired credentials."""

    status_code = 401
    public_message = "Authentication required."


class DuplicatePrescriptionError(MedVaultError):
    """The prescription content hash is already in the ledger."""

    status_code = 409
    public_message = "This prescription has already been registered."


class StorageError(MedVaultError):
    """Object storage read/write failed."""

    status_code = 502
    public_message = "Could not store the uploaded document. Please try again."


class LedgerError(MedVaultError):
    """The hash ledger or record store could not be written."""

    status_code = 502
    public_message = "Could not save the prescription. Please try again."

