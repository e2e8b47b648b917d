"""
MedVault – Flask Application Factory
Serves the patient records REST API.
"""

import logging
from pathlib import Path

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from medvault.config import Config
from medvault.database import db
from medvault.routes.auth import auth_bp
from medvault.routes.prescription import prescription_bp
from medvault.routes.medicines import medicines_bp
from medvault.routes.dashboard import dashboard_bp
from medvault.routes.profile import profile_bp
from medvault.routes.records import appointments_bp, bills_bp, lab_tests_bp
from medvault.middleware.auth_middleware import jwt_required_middleware
from medvault.middleware.audit_logger import audit_after_request
from medvault.services.background_scheduler import init_scheduler

logger = logging.getLogger("medvault")

limiter = Limiter(key_func=get_remote_address, default_limits=[Config.RATE_LIMIT_DEFAULT])


def create_app(overrides: dict = None) -> Flask:
    Config.validate()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = Config.FLASK_SECRET_KEY
    app.config["SQLALCHEMY_DATABASE_URI"] = Config.DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["DEBUG"] = Config.APP_ENV == "development"
    app.config["UPLOAD_FOLDER"] = Config.UPLOAD_FOLDER
    # Headroom over the per-file limit for multipart framing
    app.config["MAX_CONTENT_LENGTH"] = (Config.MAX_UPLOAD_MB + 1) * 1024 * 1024
    app.config["RATELIMIT_ENABLED"] = Config.APP_ENV != "testing"
    if overrides:
        app.config.update(overrides)

    Path(app.config["UPLOAD_FOLDER"]).mkdir(parents=True, exist_ok=True)

    # Extensions
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    limiter.init_app(app)
    db.init_app(app)

    # Create tables if they don't already exist
    with app.app_context():
        from medvault.models import models as _models  # noqa: F401 – ensure all models are registered
        db.create_all()

    # Middleware
    app.before_request(jwt_required_middleware)
    app.after_request(audit_after_request)

    # Blueprints
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(prescription_bp, url_prefix="/api/prescriptions")
    app.register_blueprint(medicines_bp, url_prefix="/api/medicines")
    app.register_blueprint(dashboard_bp, url_prefix="/api/dashboard")
    app.register_blueprint(profile_bp, url_prefix="/api/profile")
    app.register_blueprint(lab_tests_bp, url_prefix="/api/lab-tests")
    app.register_blueprint(bills_bp, url_prefix="/api/bills")
    app.register_blueprint(appointments_bp, url_prefix="/api/appointments")

    # Health check
    @app.route("/api/health")
    def health():
        return {"status": "ok", "service": "medvault"}

    @app.errorhandler(413)
    def too_large(_exc):
        return {"error": f"File size should not exceed {Config.MAX_UPLOAD_MB}MB."}, 413

    if Config.APP_ENV != "testing":
        init_scheduler(app)

    logger.info("MedVault app created (env=%s).", Config.APP_ENV)
    return app
