"""Owner identity for API requests.

Every pipeline call is scoped by a verified ``owner_id``.  Owners present
an HMAC-SHA256 signed token, either in the ``auth-token`` cookie or as an
``Authorization: Bearer`` header:

    <owner_id>:<issued_at unix seconds>:<hex signature>

The signature covers ``<owner_id>:<issued_at>``; tokens expire after
``auth_token_ttl_hours``.  With no ``auth_secret`` configured (local
development) the ``X-Owner-Id`` header is trusted as-is instead.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict

from mindlens.config.settings import Settings
from mindlens.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

AUTH_COOKIE = "auth-token"
DEV_OWNER_HEADER = "X-Owner-Id"


class OwnerIdentity(BaseModel):
    """The verified caller of an API request."""

    model_config = ConfigDict(frozen=True)

    owner_id: str


def _sign(owner_id: str, issued_at: int, secret: str) -> str:
    payload = f"{owner_id}:{issued_at}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def issue_owner_token(owner_id: str, secret: str, issued_at: int | None = None) -> str:
    """Return a signed token for *owner_id*."""
    if not owner_id:
        raise ValueError("owner_id must be non-empty")
    if not secret:
        raise ValueError("secret must be non-empty")
    issued = int(time.time()) if issued_at is None else issued_at
    return f"{owner_id}:{issued}:{_sign(owner_id, issued, secret)}"


def verify_owner_token(
    token: str,
    secret: str,
    ttl_hours: int = 168,
    now: float | None = None,
) -> str | None:
    """Return the owner id carried by *token*, or ``None`` if it is invalid or expired."""
    if not token or not secret:
        return None
    parts = token.rsplit(":", 2)
    if len(parts) != 3:
        return None
    owner_id, issued_raw, signature = parts
    if not owner_id:
        return None
    try:
        issued_at = int(issued_raw)
    except ValueError:
        return None

    if not hmac.compare_digest(signature, _sign(owner_id, issued_at, secret)):
        return None

    current = time.time() if now is None else now
    if issued_at > current + 60 or current - issued_at > ttl_hours * 3600:
        return None
    return owner_id


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(AUTH_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_owner_identity(request: Request) -> OwnerIdentity:
    """FastAPI dependency resolving the caller's :class:`OwnerIdentity`.

    Raises ``HTTPException(401)`` when no valid credential is present.
    """
    settings: Settings = request.app.state.settings

    if not settings.auth_secret:
        owner_id = request.headers.get(DEV_OWNER_HEADER, "").strip()
        if not owner_id:
            raise HTTPException(status_code=401, detail="Authentication required")
        return OwnerIdentity(owner_id=owner_id)

    token = _extract_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Authentication required")

    owner_id = verify_owner_token(
        token, settings.auth_secret, ttl_hours=settings.auth_token_ttl_hours
    )
    if owner_id is None:
        _logger.warning("auth_token_rejected", path=str(request.url.path))
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return OwnerIdentity(owner_id=owner_id)


OwnerDep = Annotated[OwnerIdentity, Depends(get_owner_identity)]
