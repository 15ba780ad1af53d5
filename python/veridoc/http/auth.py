"""Shared-secret authentication for operator/cron endpoints."""

from __future__ import annotations

import hmac

from starlette.requests import Request

from ..errors import AuthError, ConfigurationError

SECRET_HEADER = "x-cron-secret"


def extract_secret(request: Request) -> str | None:
    """Secret from ``x-cron-secret`` or ``Authorization: Bearer <secret>``."""
    secret = request.headers.get(SECRET_HEADER)
    if secret:
        return secret
    authorization = request.headers.get("authorization") or ""
    if authorization.startswith("Bearer "):
        return authorization[len("Bearer "):]
    return None


def require_secret(request: Request, expected: str | None) -> None:
    """
    Raises:
        ConfigurationError: No secret configured server-side.
        AuthError: Missing or mismatched secret.
    """
    if not expected:
        raise ConfigurationError("CRON_SECRET not configured")
    provided = extract_secret(request)
    if provided is None or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise AuthError("Unauthorized")
