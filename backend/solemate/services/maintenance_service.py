# Overview: Service-layer operations for maintenance; encapsulates business logic and database work.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import AuthToken, CartItem, GuestSession, Order, OtpChallenge, SecurityEvent, WishlistItem
from solemate.time_utils import utcnow


def cleanup_expired_sessions(*, grace_days: int = 7) -> int:
    """
    Delete guest sessions expired (or migrated) more than grace_days ago,
    along with any cart/wishlist rows still attached to them.

    Sessions referenced by guest orders are kept so the order keeps its link.
    """
    cutoff = utcnow() - timedelta(days=grace_days)
    stale_ids = [
        row.id for row in db.session.query(GuestSession.id).filter(
            db.or_(GuestSession.expires_at < cutoff, GuestSession.migrated_at < cutoff)
        ).all()
    ]
    if not stale_ids:
        return 0

    db.session.query(CartItem).filter(
        CartItem.guest_session_id.in_(stale_ids)
    ).delete(synchronize_session=False)
    db.session.query(WishlistItem).filter(
        WishlistItem.guest_session_id.in_(stale_ids)
    ).delete(synchronize_session=False)

    referenced = {
        row.guest_session_id for row in db.session.query(Order.guest_session_id).filter(
            Order.guest_session_id.in_(stale_ids)
        ).all()
    }
    deletable = [sid for sid in stale_ids if sid not in referenced]

    deleted = 0
    if deletable:
        deleted = db.session.query(GuestSession).filter(
            GuestSession.id.in_(deletable)
        ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def cleanup_otp_challenges() -> int:
    """Delete expired and consumed one-time codes."""
    now = utcnow()
    deleted = db.session.query(OtpChallenge).filter(
        db.or_(OtpChallenge.expires_at < now, OtpChallenge.consumed_at.isnot(None))
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def cleanup_auth_tokens(*, retention_days: int = 30) -> int:
    """Delete bearer tokens that expired or were revoked more than retention_days ago."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(AuthToken).filter(
        db.or_(
            AuthToken.expires_at < cutoff,
            db.and_(AuthToken.is_revoked.is_(True), AuthToken.revoked_at < cutoff),
        )
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def cleanup_security_events(*, retention_days: int = 90) -> int:
    """Delete login and code request events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def run_cleanup() -> dict:
    return {
        "guest_sessions": cleanup_expired_sessions(),
        "otp_challenges": cleanup_otp_challenges(),
        "auth_tokens": cleanup_auth_tokens(),
        "security_events": cleanup_security_events(),
    }
