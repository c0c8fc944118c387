# Overview: Service-layer operations for guest-to-user session migration.

"""
Session Migration

WHY: A shopper who fills a cart as a guest and then logs in must keep the
cart. On authentication every guest cart/wishlist row is re-keyed to the
user, and the guest session is retired so it can never be claimed twice.

RULES:
- Cart: a guest line for a variant the user already has is merged by adding
  quantities (no stock cap; checkout re-checks stock). Otherwise the row is
  re-keyed.
- Wishlist: a guest row duplicating a user row (same product and variant) is
  dropped. Otherwise the row is re-keyed.
- One transaction: any failure leaves both sides exactly as they were.
- Unknown, expired, or already migrated sessions are a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

from flask import current_app

from ..extensions import db
from ..models import CartItem, GuestSession, WishlistItem
from . import session_service
from .concurrency import atomic, lock_for_update


@dataclass
class MigrationResult:
    migrated: bool = False
    cart_items_moved: int = 0
    cart_items_merged: int = 0
    wishlist_items_moved: int = 0
    wishlist_items_dropped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _migrate_cart(session_id: int, user_id: int, result: MigrationResult) -> None:
    guest_items = lock_for_update(
        db.session.query(CartItem)
        .filter(CartItem.guest_session_id == session_id)
        .order_by(CartItem.id.asc())
    ).all()

    for item in guest_items:
        existing = lock_for_update(
            db.session.query(CartItem).filter(
                CartItem.user_id == user_id,
                CartItem.variant_id == item.variant_id,
            )
        ).first()

        if existing is not None:
            existing.quantity += item.quantity
            db.session.delete(item)
            result.cart_items_merged += 1
        else:
            item.guest_session_id = None
            item.user_id = user_id
            result.cart_items_moved += 1
        db.session.flush()


def _migrate_wishlist(session_id: int, user_id: int, result: MigrationResult) -> None:
    guest_items = db.session.query(WishlistItem).filter(
        WishlistItem.guest_session_id == session_id
    ).order_by(WishlistItem.id.asc()).all()

    for item in guest_items:
        query = db.session.query(WishlistItem.id).filter(
            WishlistItem.user_id == user_id,
            WishlistItem.product_id == item.product_id,
        )
        if item.variant_id is None:
            query = query.filter(WishlistItem.variant_id.is_(None))
        else:
            query = query.filter(WishlistItem.variant_id == item.variant_id)

        if query.first() is not None:
            db.session.delete(item)
            result.wishlist_items_dropped += 1
        else:
            item.guest_session_id = None
            item.user_id = user_id
            result.wishlist_items_moved += 1
        db.session.flush()


def migrate(session_or_token: GuestSession | str | None, user_id: int) -> MigrationResult:
    """
    Move a guest session's cart and wishlist to `user_id` and retire the session.

    Accepts either the plaintext guest token or a GuestSession row.
    """
    if isinstance(session_or_token, GuestSession):
        session = session_or_token if session_service.is_live(session_or_token) else None
    else:
        session = session_service.resolve_session(session_or_token)

    result = MigrationResult()
    if session is None:
        return result

    with atomic():
        _migrate_cart(session.id, user_id, result)
        _migrate_wishlist(session.id, user_id, result)
        session_service.invalidate_session(session, user_id)
        result.migrated = True

    current_app.logger.info(
        "Guest session %s migrated to user %s: cart moved=%s merged=%s, wishlist moved=%s dropped=%s",
        session.id, user_id,
        result.cart_items_moved, result.cart_items_merged,
        result.wishlist_items_moved, result.wishlist_items_dropped,
    )
    return result
