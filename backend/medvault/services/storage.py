"""
Local object storage for uploaded documents.
Files live under UPLOAD_FOLDER as <area>/<user_id>/<uuid>-<filename>;
the relative key is the opaque file reference stored on records.
"""

import logging
import uuid
from pathlib import Path

from flask import current_app
from werkzeug.utils import secure_filename

from medvault.errors import StorageError

logger = logging.getLogger("medvault.storage")


class LocalFileStorage:
    def __init__(self, root):
        self.root = Path(root).resolve()

    def _path_for(self, reference: str) -> Path:
        path = (self.root / reference).resolve()
        if self.root not in path.parents:
            raise StorageError("Invalid file reference.")
        return path

    def save(self, data: bytes, filename: str, area: str, user_id) -> str:
        """Write bytes and return the file reference."""
        safe_name = secure_filename(filename or "") or "document"
        reference = f"{area}/{user_id}/{uuid.uuid4().hex}-{safe_name}"
        path = self._path_for(reference)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            logger.error("Failed to store %s: %s", reference, exc)
            raise StorageError() from exc
        logger.info("Stored %d bytes at %s", len(data), reference)
        return reference

    def delete(self, reference: str) -> None:
        """Remove a stored file; a missing file is not an error."""
        try:
            self._path_for(reference).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to delete %s: %s", reference, exc)

    def exists(self, reference: str) -> bool:
        return self._path_for(reference).is_file()

    def path(self, reference: str) -> Path:
        path = self._path_for(reference)
        if not path.is_file():
            raise StorageError("Stored document not found.")
        return path


def get_storage() -> LocalFileStorage:
    """Storage bound to the current Flask app."""
    storage = current_app.extensions.get("medvault_storage")
    if storage is None:
        storage = LocalFileStorage(current_app.config["UPLOAD_FOLDER"])
        current_app.extensions["medvault_storage"] = storage
    return storage
