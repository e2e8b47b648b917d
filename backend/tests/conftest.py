"""
Pytest configuration & fixtures for MedVault backend tests.

Key design decisions:
  - Uses sqlite:///:memory: for speed and isolation; tables are rebuilt
    for every test so the global hash ledger starts empty.
  - Disables the background scheduler (APP_ENV=testing).
  - Replaces the OpenAI extractor with an in-process fake so no test
    touches the network.
  - Uploaded files go to a per-session temporary folder.
"""

import io
import os
import sys
import tempfile

import pytest

# ── 1. Ensure backend package is importable ──
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# ── 2. Set test environment BEFORE anything else ──
_UPLOAD_DIR = tempfile.mkdtemp(prefix="medvault-test-uploads-")
os.environ["OPENAI_API_KEY"] = "test-key-not-real"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key"
os.environ["JWT_SECRET"] = "test-jwt-secret-with-enough-length-for-hs256"
os.environ["UPLOAD_FOLDER"] = _UPLOAD_DIR
os.environ["APP_ENV"] = "testing"

# ── 3. NOW safe to import application modules ──
from medvault.main import create_app
from medvault.database import db as _db
from medvault.models.models import User
from medvault.services.extraction_service import ExtractionResult
from medvault.services.storage import LocalFileStorage


class FakeExtractor:
    """Stands in for the vision model; returns whatever the test configures."""

    def __init__(self):
        self.result = ExtractionResult()
        self.calls = 0

    def __call__(self, image_bytes, mime_type):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


# ═══════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Create application for testing."""
    application = create_app({"TESTING": True, "EXTRACTOR": FakeExtractor()})
    return application


@pytest.fixture
def db_session(app):
    """Fresh tables for each test, inside an app context."""
    with app.app_context():
        _db.drop_all()
        _db.create_all()
        yield _db.session
        _db.session.remove()


@pytest.fixture
def extractor(app):
    fake = app.config["EXTRACTOR"]
    fake.result = ExtractionResult()
    fake.calls = 0
    return fake


@pytest.fixture
def client(app, db_session, extractor):
    """Flask test client with database ready."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def storage():
    return LocalFileStorage(_UPLOAD_DIR)


@pytest.fixture
def user(db_session):
    """A patient created directly in the database (service-level tests)."""
    u = User(email="patient@example.com", password_hash="x", full_name="Pat Ient")
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture
def other_user(db_session):
    u = User(email="other@example.com", password_hash="x", full_name="Oth Er")
    db_session.add(u)
    db_session.commit()
    return u


def _register_and_login(client, email):
    client.post("/api/auth/register", json={
        "email": email,
        "password": "TestPass123",
        "full_name": "Test Patient",
    })
    resp = client.post("/api/auth/login", json={"email": email, "password": "TestPass123"})
    token = resp.get_json()["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(client):
    """Register a test patient and return valid auth headers."""
    return _register_and_login(client, "testpatient@example.com")


@pytest.fixture
def second_auth_headers(client):
    return _register_and_login(client, "secondpatient@example.com")


def image_file(content=b"\x89PNG fake image bytes", name="rx.png", mimetype="image/png"):
    return (io.BytesIO(content), name, mimetype)
