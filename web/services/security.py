"""Caller verification for the internal worker endpoints."""

from __future__ import annotations

from typing import Tuple

from flask import current_app, request

try:
    from google.auth.transport import requests as google_requests
    from google.oauth2 import id_token
except Exception:  # pragma: no cover
    google_requests = None
    id_token = None



def _bearer_token() -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return ""
    return auth_header.split(" ", 1)[1].strip()



def verify_internal_request() -> Tuple[bool, str]:
    """Validate the Cloud Tasks / Scheduler OIDC token on an internal call.

    With TASK_SERVICE_ACCOUNT_EMAIL set, the token must also be issued to
    that service account. ALLOW_INSECURE_INTERNAL skips all checks (dev).
    """
    if current_app.config.get("ALLOW_INSECURE_INTERNAL", False):
        return True, "insecure-dev-allowed"

    token = _bearer_token()
    if not token:
        return False, "Missing bearer token"

    if id_token is None or google_requests is None:
        return False, "google-auth libraries unavailable"

    audience = current_app.config.get("INTERNAL_TASK_AUDIENCE") or current_app.config.get("TASK_HANDLER_URL")
    if not audience:
        return False, "No INTERNAL_TASK_AUDIENCE configured"

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except Exception as exc:  # pragma: no cover
        return False, f"Invalid token: {exc}"

    expected_email = (current_app.config.get("TASK_SERVICE_ACCOUNT_EMAIL") or "").lower()
    token_email = str(claims.get("email", "")).lower()
    if expected_email and token_email != expected_email:
        return False, f"Token issued to unexpected account: {token_email or 'unknown'}"

    return True, "ok"
