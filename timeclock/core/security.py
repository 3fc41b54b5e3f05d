"""
Bearer-token verification (JWT) and cron-secret comparison.

Tokens are issued by the identity provider; this service only decodes
them.  ``create_access_token`` exists for local tooling and tests.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from timeclock.core.config import settings


# ── JWT tokens ──────────────────────────────────────────────────────
def create_access_token(
    subject: str | Any,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode(
        {"exp": expire, "sub": str(subject), "type": "access"},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )


def decode_access_token(token: str) -> dict | None:
    """Return payload dict if *access* token is valid, else ``None``."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        if payload.get("type") != "access":
            return None
        return payload
    except JWTError:
        return None


# ── Cron secret ─────────────────────────────────────────────────────
def verify_cron_secret(presented: str | None) -> bool:
    """Constant-time comparison; an unset CRON_SECRET rejects everything."""
    expected = settings.CRON_SECRET
    if not expected or not presented:
        return False
    return hmac.compare_digest(presented.encode(), expected.encode())
