"""
Authentication routes – patient registration and login.
Both return {"token", "user"}; the token is sent back as a Bearer header.
"""

import re

from flask import Blueprint, request, jsonify
import bcrypt

from medvault.database import db
from medvault.errors import AuthenticationError
from medvault.middleware.auth_middleware import issue_token
from medvault.models.models import User
from medvault.services.normalization import clean_text

auth_bp = Blueprint("auth", __name__)

MIN_PASSWORD_LENGTH = 8
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_password(user: User, password: str) -> None:
    if not user or not bcrypt.checkpw(password.encode(), user.password_hash.encode()):
        raise AuthenticationError("Invalid email or password.")
    if not user.is_active:
        raise AuthenticationError("Account deactivated. Contact support.", status_code=403)


@auth_bp.route("/register", methods=["POST"])
def register():
    data = request.get_json(force=True, silent=True) or {}
    missing = [f for f in ("email", "password", "full_name") if not data.get(f)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    email = str(data["email"]).strip().lower()
    full_name = clean_text(data["full_name"])
    password = str(data["password"])
    if not _EMAIL_RE.match(email):
        return jsonify({"error": "Invalid email address."}), 400
    if not full_name:
        return jsonify({"error": "Name cannot be empty."}), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify({"error": f"Password must be at least {MIN_PASSWORD_LENGTH} characters."}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({"error": "Email already registered."}), 409

    user = User(
        email=email,
        password_hash=bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode(),
        full_name=full_name,
    )
    db.session.add(user)
    db.session.commit()
    return jsonify({"token": issue_token(user), "user": user.to_dict()}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(force=True, silent=True) or {}
    email = str(data.get("email") or "").strip().lower()
    user = User.query.filter_by(email=email).first()
    try:
        _check_password(user, str(data.get("password") or ""))
    except AuthenticationError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    return jsonify({"token": issue_token(user), "user": user.to_dict()}), 200
