"""
Audit logger – after-request hook writing one audit_log row per API call.
Credentials are redacted and uploaded file bytes are never stored; for
multipart requests only the form fields and file names are kept.
"""

import json
import logging

from flask import request, g

from medvault.database import db
from medvault.models.models import AuditLog

logger = logging.getLogger("medvault.audit")

REDACTED_FIELDS = frozenset({"password", "token"})
MAX_SUMMARY_CHARS = 2000
_SKIPPED_PATHS = ("/api/health",)


def _redact(data):
    if isinstance(data, dict):
        return {
            k: "***" if k in REDACTED_FIELDS else _redact(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_redact(item) for item in data]
    return data


def _dump(data) -> str:
    return json.dumps(_redact(data), default=str)[:MAX_SUMMARY_CHARS]


def _request_summary():
    if request.is_json:
        body = request.get_json(silent=True)
        return _dump(body) if body is not None else None
    if request.files or request.form:
        form = request.form.to_dict()
        form["files"] = [f.filename for f in request.files.values()]
        return _dump(form)
    return None


def _response_summary(response):
    if not response.is_json:
        return None
    data = response.get_json(silent=True)
    return _dump(data) if data is not None else None


def audit_after_request(response):
    if not request.path.startswith("/api/") or request.path in _SKIPPED_PATHS:
        return response

    try:
        user = getattr(g, "current_user", None)
        db.session.add(AuditLog(
            user_id=user.id if user else None,
            endpoint=request.path,
            method=request.method,
            request_body=_request_summary(),
            response_summary=_response_summary(response),
            status_code=response.status_code,
        ))
        db.session.commit()
    except Exception as exc:
        logger.warning("Audit logging failed for %s %s: %s", request.method, request.path, exc)
        db.session.rollback()

    return response
