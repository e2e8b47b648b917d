"""
MedVault Backend – Configuration Loader
Loads all secrets and settings from .env via environment variables.
No secret may be hard-coded anywhere in the codebase.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)


class Config:
    """Base configuration – values sourced exclusively from environment."""

    # --- Secrets ---
    OPENAI_API_KEY: str = os.environ.get("OPENAI_API_KEY", "")
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")
    FLASK_SECRET_KEY: str = os.environ.get("FLASK_SECRET_KEY", "")
    JWT_SECRET: str = os.environ.get("JWT_SECRET", "")
    JWT_EXPIRY_HOURS: int = int(os.environ.get("JWT_EXPIRY_HOURS", "12"))

    # --- AI extraction ---
    EXTRACTION_MODEL: str = os.environ.get("EXTRACTION_MODEL", "gpt-4o-mini")
    EXTRACTION_TIMEOUT_SECONDS: float = float(os.environ.get("EXTRACTION_TIMEOUT_SECONDS", "30"))
    EXTRACTION_MAX_RETRIES: int = int(os.environ.get("EXTRACTION_MAX_RETRIES", "1"))

    # --- Storage ---
    UPLOAD_FOLDER: str = os.environ.get(
        "UPLOAD_FOLDER",
        str(Path(__file__).resolve().parent.parent / "uploads"),
    )
    MAX_UPLOAD_MB: int = int(os.environ.get("MAX_UPLOAD_MB", "5"))

    # --- Medication reminders ---
    REMINDER_WINDOW_DAYS: int = int(os.environ.get("REMINDER_WINDOW_DAYS", "2"))

    # --- App ---
    APP_ENV: str = os.environ.get("APP_ENV", "development")
    DEBUG: bool = APP_ENV == "development"

    # --- Rate limiting ---
    RATE_LIMIT_DEFAULT: str = os.environ.get("RATE_LIMIT_DEFAULT", "60/minute")

    # --- Validation ---
    @classmethod
    def validate(cls) -> None:
        """Raise on missing critical environment variables."""
        required = ["OPENAI_API_KEY", "DATABASE_URL", "FLASK_SECRET_KEY", "JWT_SECRET"]
        missing = [k for k in required if not getattr(cls, k)]
        if missing:
            raise EnvironmentError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Ensure a .env file exists with all required values."
            )
