"""Caller identity from Google IAP headers, with a local development fallback."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import abort, current_app, request

# Checked in order; IAP sets the first, some proxies forward the second
IDENTITY_HEADERS = ("X-Goog-Authenticated-User-Email", "X-Forwarded-Email")


@dataclass
class AuthIdentity:
    email: str
    display_name: str


def parse_iap_email(raw_header: str) -> Optional[str]:
    """Parse IAP header format: accounts.google.com:user@example.com."""
    if not raw_header:
        return None
    value = raw_header.strip()
    if ":" in value:
        value = value.split(":", 1)[1]
    return value.strip().lower() or None


def display_name_for(email: str) -> str:
    return email.split("@", 1)[0].replace(".", " ").replace("_", " ").title()


def get_authenticated_email() -> Optional[str]:
    for header in IDENTITY_HEADERS:
        email = parse_iap_email(request.headers.get(header, ""))
        if email:
            return email
    return current_app.config.get("DEV_AUTH_EMAIL") or None


def require_identity() -> AuthIdentity:
    """Return the caller's identity or abort with 401. Runs are stamped with the email."""
    email = get_authenticated_email()
    if not email:
        abort(401)
    return AuthIdentity(email=email, display_name=display_name_for(email))
