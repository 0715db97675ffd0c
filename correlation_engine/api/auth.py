"""Shared-secret bearer check for the scheduled batch trigger.

The scheduler calls the trigger with ``Authorization: Bearer <secret>``.
The secret comes from ``Settings.cron_secret`` and is compared in
constant time.  With no secret configured the trigger is open only when
``APP_ENV`` is ``development``; anywhere else it refuses every request.
"""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

from correlation_engine.config.settings import Settings

_BEARER_PREFIX = "Bearer "


def is_authorized(authorization: str | None, settings: Settings) -> bool:
    """Return True if *authorization* carries the configured bearer secret."""
    if not settings.trigger_auth_required():
        return True
    if not settings.cron_secret or not authorization:
        return False
    if not authorization.startswith(_BEARER_PREFIX):
        return False
    token = authorization[len(_BEARER_PREFIX):]
    return hmac.compare_digest(token.encode("utf-8"), settings.cron_secret.encode("utf-8"))


def require_cron_secret(request: Request) -> None:
    """FastAPI dependency: 401 unless the request carries the cron secret."""
    settings: Settings = request.app.state.settings
    if not is_authorized(request.headers.get("authorization"), settings):
        raise HTTPException(status_code=401, detail="Unauthorized")
