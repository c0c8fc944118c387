# Overview: Service-layer operations for the wishlist; encapsulates business logic and database work.

"""
Wishlist Service

Same ownership pattern as the cart, without quantities. A wishlist entry is
unique per (owner, product, variant); variant may be NULL when the shopper
saved a product before choosing a size.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import WishlistItem, Product, ProductVariant
from .cart_service import CartChange, _add_item_locked
from .concurrency import atomic
from .errors import NotFound
from .owner import Owner, owner_columns, owner_filter


@dataclass
class WishlistChange:
    item: WishlistItem
    created: bool
    message: str


def _find_owned_item(owner: Owner, wishlist_item_id: int) -> WishlistItem | None:
    return (
        db.session.query(WishlistItem)
        .filter(WishlistItem.id == wishlist_item_id, owner_filter(WishlistItem, owner))
        .first()
    )


def add_item(owner: Owner, product_id: int, variant_id: int | None = None) -> WishlistChange:
    """
    Save a product (optionally a variant). Adding an existing entry returns it.

    Raises:
        NotFound: unknown product/variant, or variant of another product
    """
    with atomic():
        product = db.session.query(Product).filter_by(id=product_id, is_active=True).first()
        if product is None:
            raise NotFound("Product not found", details={"product_id": product_id})

        if variant_id is not None:
            variant = db.session.query(ProductVariant).filter_by(id=variant_id).first()
            if variant is None or variant.product_id != product_id:
                raise NotFound("Variant not found", details={"variant_id": variant_id})

        query = db.session.query(WishlistItem).filter(
            owner_filter(WishlistItem, owner),
            WishlistItem.product_id == product_id,
        )
        if variant_id is None:
            query = query.filter(WishlistItem.variant_id.is_(None))
        else:
            query = query.filter(WishlistItem.variant_id == variant_id)

        existing = query.first()
        if existing is not None:
            return WishlistChange(item=existing, created=False, message="Already in wishlist")

        item = WishlistItem(product_id=product_id, variant_id=variant_id, **owner_columns(owner))
        db.session.add(item)
        db.session.flush()

    return WishlistChange(item=item, created=True, message="Added to wishlist")


def remove_item(owner: Owner, wishlist_item_id: int) -> bool:
    """Idempotent: returns False when there was nothing to remove."""
    with atomic():
        deleted = (
            db.session.query(WishlistItem)
            .filter(WishlistItem.id == wishlist_item_id, owner_filter(WishlistItem, owner))
            .delete(synchronize_session=False)
        )
    return bool(deleted)


def get_wishlist(owner: Owner) -> list[WishlistItem]:
    return (
        db.session.query(WishlistItem)
        .filter(owner_filter(WishlistItem, owner))
        .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
        .all()
    )


def clear_wishlist(owner: Owner) -> int:
    with atomic():
        deleted = (
            db.session.query(WishlistItem)
            .filter(owner_filter(WishlistItem, owner))
            .delete(synchronize_session=False)
        )
    return deleted


def move_to_cart(owner: Owner, wishlist_item_id: int, quantity: int = 1) -> CartChange:
    """
    Add the saved variant to the cart and drop the wishlist entry.

    All-or-nothing: if the cart add fails (e.g. OutOfStock) the transaction
    rolls back and the wishlist entry is left untouched.

    Raises:
        NotFound: entry missing/not owned, or it has no variant selected
        OutOfStock: from the cart add
    """
    with atomic():
        item = _find_owned_item(owner, wishlist_item_id)
        if item is None:
            raise NotFound("Wishlist item not found", details={"wishlist_item_id": wishlist_item_id})
        if item.variant_id is None:
            raise NotFound(
                "Select a size before moving this item to the cart",
                details={"wishlist_item_id": wishlist_item_id, "reason": "variant_required"},
            )

        change = _add_item_locked(owner, item.variant_id, quantity)
        db.session.delete(item)
        db.session.flush()

    change.message = "Moved to cart"
    return change
