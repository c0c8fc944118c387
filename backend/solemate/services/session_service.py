# Overview: Service-layer operations for guest sessions; encapsulates business logic and database work.

"""
Guest Session Store

WHY: Anonymous visitors own cart and wishlist rows before they log in.
Their identity is an opaque token handed out on first cart/wishlist touch.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Fixed TTL (GUEST_SESSION_TTL_DAYS, default 30 days)
- Migrated sessions never validate again, so a token cannot be replayed
  to claim items a second time
"""

import secrets
import hashlib
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import GuestSession
from solemate.time_utils import utcnow, as_utc_naive
from .errors import StorageError


DEFAULT_SESSION_TTL_DAYS = 30


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _session_ttl() -> timedelta:
    days = current_app.config.get("GUEST_SESSION_TTL_DAYS", DEFAULT_SESSION_TTL_DAYS)
    return timedelta(days=int(days))


def is_live(session: GuestSession) -> bool:
    if session.migrated_at is not None:
        return False
    return as_utc_naive(session.expires_at) > utcnow()


def create_session() -> tuple[GuestSession, str]:
    """
    Create a new guest session.

    Returns (session_record, plaintext_token).
    Raises StorageError if the row cannot be persisted.
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = GuestSession(
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + _session_ttl(),
        last_seen_at=now,
    )

    try:
        db.session.add(session)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Could not create guest session") from exc

    return session, plaintext_token


def resolve_session(token: str | None) -> GuestSession | None:
    """
    Look up a live guest session by plaintext token.

    Returns None for empty, unknown, expired, or migrated tokens.
    """
    if not token or not isinstance(token, str):
        return None

    session = db.session.query(GuestSession).filter_by(
        token_hash=hash_token(token.strip())
    ).first()

    if session is None or not is_live(session):
        return None
    return session


def validate_session(token: str | None) -> bool:
    """
    True if the token identifies a live guest session.

    Never raises for invalid input; False is the normal "not found" case.
    """
    return resolve_session(token) is not None


def get_or_create_session(token: str | None) -> tuple[GuestSession, str, bool]:
    """
    Resolve the presented token, or issue a fresh session if it is missing,
    unknown, expired, or migrated.

    Returns (session, plaintext_token, created).
    """
    session = resolve_session(token)
    if session is not None:
        return session, token.strip(), False

    session, new_token = create_session()
    return session, new_token, True


def extend_session(token: str | None) -> GuestSession | None:
    """Push expiry out by one TTL from now. Returns None if the token is not live."""
    session = resolve_session(token)
    if session is None:
        return None

    now = utcnow()
    session.expires_at = now + _session_ttl()
    session.last_seen_at = now
    db.session.commit()
    return session


def invalidate_session(session: GuestSession, user_id: int) -> None:
    """
    Mark the session migrated to `user_id`.

    Does NOT commit: called inside the migration transaction.
    """
    session.migrated_at = utcnow()
    session.migrated_to_user_id = user_id
    db.session.flush()
