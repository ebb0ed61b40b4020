"""Bearer-token issue and lookup.

Tokens are random URL-safe strings shown to the user once. Only the
SHA-256 digest is stored, so a leaked database does not leak tokens.
"""

import hashlib
import hmac
import logging
import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session

from collectors.db.models import ApiToken, User, utc_now_iso
from collectors.errors import NotFoundError

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(db: Session, user_id: str) -> str:
    """Create a token for ``user_id`` and return its plaintext.

    Raises:
        NotFoundError: If the user does not exist.
    """
    if db.get(User, user_id) is None:
        raise NotFoundError("User", user_id)
    token = secrets.token_urlsafe(TOKEN_BYTES)
    db.add(ApiToken(user_id=user_id, token_hash=hash_token(token)))
    db.commit()
    logger.info("Issued API token for user %s", user_id)
    return token


def resolve_token(db: Session, token: str | None) -> str | None:
    """Return the user id owning ``token``, or None if unknown or revoked."""
    if not token:
        return None
    digest = hash_token(token)
    row = db.scalars(select(ApiToken).where(ApiToken.token_hash == digest)).first()
    if row is None or row.revoked or not hmac.compare_digest(row.token_hash, digest):
        return None
    row.last_used_at = utc_now_iso()
    db.commit()
    return row.user_id


def revoke_token(db: Session, token: str) -> bool:
    row = db.scalars(
        select(ApiToken).where(ApiToken.token_hash == hash_token(token))
    ).first()
    if row is None:
        return False
    row.revoked = True
    db.commit()
    return True
