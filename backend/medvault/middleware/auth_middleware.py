"""
Authentication middleware – JWT bearer tokens for patients.

Every /api/* route except /api/auth/* and /api/health needs a token.
The resolved user is kept on flask.g for the current request only;
blueprints read it with get_current_user() and hand it to services
explicitly.
"""

from datetime import datetime, timedelta, timezone

from flask import request, g, jsonify
import jwt as pyjwt

from medvault.config import Config
from medvault.database import db
from medvault.errors import AuthenticationError
from medvault.models.models import User

PUBLIC_PREFIXES = ("/api/auth", "/api/health")
TOKEN_ALGORITHM = "HS256"


def issue_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user.id,
        "email": user.email,
        "iat": now,
        "exp": now + timedelta(hours=Config.JWT_EXPIRY_HOURS),
    }
    return pyjwt.encode(payload, Config.JWT_SECRET, algorithm=TOKEN_ALGORITHM)


def resolve_user(auth_header: str) -> User:
    """Map an Authorization header onto an active user or raise AuthenticationError."""
    scheme, _, token = (auth_header or "").partition(" ")
    if scheme != "Bearer" or not token.strip():
        raise AuthenticationError("Missing or invalid Authorization header.")

    try:
        payload = pyjwt.decode(token.strip(), Config.JWT_SECRET, algorithms=[TOKEN_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired.")
    except pyjwt.InvalidTokenError:
        raise AuthenticationError("Invalid token.")

    user = db.session.get(User, payload.get("user_id"))
    if user is None or not user.is_active:
        raise AuthenticationError("Account not found or deactivated.", status_code=403)
    return user


def jwt_required_middleware():
    """Before-request hook."""
    if request.method == "OPTIONS":
        return None
    path = request.path
    if not path.startswith("/api/") or path.startswith(PUBLIC_PREFIXES):
        return None

    try:
        g.current_user = resolve_user(request.headers.get("Authorization", ""))
    except AuthenticationError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    return None


def get_current_user() -> User:
    return getattr(g, "current_user", None)
