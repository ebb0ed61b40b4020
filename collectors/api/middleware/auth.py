"""Bearer-token authentication dependencies.

``require_user`` protects chat and vehicle routes. ``optional_user`` is
for endpoints that degrade for anonymous callers (chat suggestions).
Repeated failures from one client IP are throttled.
"""

from __future__ import annotations

import logging
import threading
import time

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from collectors.db.connection import get_db
from collectors.errors import AuthenticationError
from collectors.services.auth_service import resolve_token

logger = logging.getLogger(__name__)

_AUTH_FAIL_MAX = 10  # Max failures per IP in the time window
_AUTH_FAIL_WINDOW_SECONDS = 300
_auth_failures: dict[str, list[float]] = {}
_auth_lock = threading.Lock()


def _get_client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _is_rate_limited(client_ip: str) -> bool:
    with _auth_lock:
        now = time.monotonic()
        timestamps = [
            t for t in _auth_failures.get(client_ip, [])
            if now - t < _AUTH_FAIL_WINDOW_SECONDS
        ]
        _auth_failures[client_ip] = timestamps
        return len(timestamps) >= _AUTH_FAIL_MAX


def _record_auth_failure(client_ip: str) -> None:
    with _auth_lock:
        _auth_failures.setdefault(client_ip, []).append(time.monotonic())


def reset_rate_limiter() -> None:
    """Reset the rate limiter state. Used by tests."""
    with _auth_lock:
        _auth_failures.clear()


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def optional_user(request: Request, db: Session = Depends(get_db)) -> str | None:
    """User id for a valid bearer token, else None."""
    return resolve_token(db, _bearer_token(request))


def require_user(request: Request, db: Session = Depends(get_db)) -> str:
    """User id for a valid bearer token.

    Raises:
        AuthenticationError: Missing, unknown or revoked token (401).
        HTTPException: 429 after too many failures from this client.
    """
    client_ip = _get_client_ip(request)
    if _is_rate_limited(client_ip):
        logger.warning("Auth rate limit exceeded for %s", client_ip)
        raise HTTPException(status_code=429, detail="Too many failed auth attempts")

    user_id = resolve_token(db, _bearer_token(request))
    if user_id is None:
        _record_auth_failure(client_ip)
        raise AuthenticationError()
    return user_id
