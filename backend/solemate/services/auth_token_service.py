# Overview: Service-layer operations for user bearer tokens; encapsulates business logic and database work.

"""
Bearer Token Management

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

SECURITY FEATURES:
- 32-byte random tokens, SHA-256 hashed before storage
- 24-hour absolute timeout (TOKEN_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (TOKEN_IDLE_TIMEOUT)
- Revocable on logout, and all at once on password reset or change
- Tracks client IP and user agent for security monitoring
"""

from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import AuthToken, User
from solemate.time_utils import utcnow, as_utc_naive
from .session_service import generate_token, hash_token


# Configuration constants
TOKEN_ABSOLUTE_TIMEOUT = timedelta(hours=24)  # Maximum token lifetime
TOKEN_IDLE_TIMEOUT = timedelta(hours=2)        # Activity timeout


@dataclass
class AuthContext:
    """Authenticated identity returned by validate_token."""
    user: User
    token: AuthToken


def issue_token(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
    *,
    commit: bool = True,
) -> tuple[AuthToken, str]:
    """
    Create new bearer token for user.

    Returns (token_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    plaintext_token = generate_token()
    now = utcnow()

    record = AuthToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + TOKEN_ABSOLUTE_TIMEOUT,
        user_agent=user_agent[:500] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(record)
    if commit:
        db.session.commit()
    else:
        db.session.flush()

    return record, plaintext_token


def validate_token(token: str) -> AuthContext | None:
    """
    Validate bearer token and return AuthContext if valid.

    Returns None if:
    - Token is invalid, expired, or revoked
    - Token has been idle longer than TOKEN_IDLE_TIMEOUT
    - User account is deactivated (is_active=False)

    Updates last_used_at on successful validation (activity tracking).
    """
    now = utcnow()

    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not record:
        return None

    # Check absolute timeout
    if as_utc_naive(record.expires_at) < now:
        return None

    # Check idle timeout
    if now - as_utc_naive(record.last_used_at) > TOKEN_IDLE_TIMEOUT:
        record.is_revoked = True
        record.revoked_at = now
        record.revoked_reason = "Idle timeout"
        db.session.commit()
        return None

    user = record.user
    if not user or not user.is_active:
        record.is_revoked = True
        record.revoked_at = now
        record.revoked_reason = "User account deactivated"
        db.session.commit()
        return None

    record.last_used_at = now
    db.session.commit()

    return AuthContext(user=user, token=record)


def revoke_token(token: str, reason: str = "User logout") -> bool:
    """
    Revoke bearer token.

    Returns True if the token was revoked, False if not found.
    """
    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not record:
        return False

    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason

    db.session.commit()
    return True


def revoke_all_user_tokens(
    user_id: int,
    reason: str = "Revoke all sessions",
    *,
    except_token_id: int | None = None,
    commit: bool = True,
) -> int:
    """
    Revoke all active tokens for a user.

    Used on password reset and change. except_token_id keeps the caller's
    own token alive.

    Returns count of tokens revoked.
    """
    now = utcnow()

    query = db.session.query(AuthToken).filter_by(
        user_id=user_id,
        is_revoked=False
    )
    if except_token_id is not None:
        query = query.filter(AuthToken.id != except_token_id)
    records = query.all()

    for record in records:
        record.is_revoked = True
        record.revoked_at = now
        record.revoked_reason = reason

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return len(records)
