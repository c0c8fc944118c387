# Overview: Service-layer operations for the cart; encapsulates business logic and database work.

"""
Cart Service

Cart lines are keyed by an Owner (user or guest session). Invariants:
- At most one CartItem per (owner, variant): repeated adds increment quantity.
- quantity >= 1. Callers map a requested 0 to remove_item().
- unit_price_cents is the variant price at the time the line was created.

Stock is checked on every add/update (check-then-write). Nothing is
reserved, so two shoppers can both add the last unit; checkout re-checks.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import CartItem, ProductVariant
from ..validation import MAX_LINE_QUANTITY, ValidationError
from .concurrency import atomic, run_with_retry
from .errors import NotFound, OutOfStock
from .inventory_service import get_available_quantity
from .owner import Owner, owner_columns, owner_filter
from .pricing_service import compute_totals


@dataclass
class CartChange:
    """Result of an add: the resulting line and a confirmation for the caller."""
    item: CartItem
    created: bool
    message: str


def _load_purchasable_variant(variant_id: int) -> ProductVariant:
    variant = db.session.query(ProductVariant).filter_by(id=variant_id).first()
    if variant is None:
        raise NotFound("Variant not found", details={"variant_id": variant_id})

    if not variant.is_available or not variant.product.is_active:
        raise OutOfStock(
            "This item is currently unavailable",
            details={"variant_id": variant_id, "available_quantity": 0},
        )
    return variant


def _ensure_stock(variant_id: int, requested: int) -> None:
    available = get_available_quantity(variant_id)
    if requested > available:
        raise OutOfStock(
            "Insufficient inventory",
            details={
                "variant_id": variant_id,
                "requested_quantity": requested,
                "available_quantity": available,
            },
        )


def _find_owned_item(owner: Owner, cart_item_id: int) -> CartItem | None:
    return (
        db.session.query(CartItem)
        .filter(CartItem.id == cart_item_id, owner_filter(CartItem, owner))
        .first()
    )


def _add_item_locked(owner: Owner, variant_id: int, quantity: int) -> CartChange:
    """Core add logic without commit; shared with wishlist move-to-cart."""
    if quantity < 1:
        raise ValueError("quantity must be >= 1")

    variant = _load_purchasable_variant(variant_id)

    item = (
        db.session.query(CartItem)
        .filter(owner_filter(CartItem, owner), CartItem.variant_id == variant_id)
        .first()
    )
    new_quantity = quantity + (item.quantity if item else 0)
    if new_quantity > MAX_LINE_QUANTITY:
        raise ValidationError(
            f"A cart line cannot hold more than {MAX_LINE_QUANTITY} of one item"
        )
    _ensure_stock(variant_id, new_quantity)

    if item is not None:
        item.quantity = new_quantity
        db.session.flush()
        return CartChange(item=item, created=False, message="Cart quantity updated")

    item = CartItem(
        product_id=variant.product_id,
        variant_id=variant_id,
        quantity=quantity,
        unit_price_cents=variant.price_cents,
        **owner_columns(owner),
    )
    db.session.add(item)
    db.session.flush()
    return CartChange(item=item, created=True, message="Item added to cart")


def add_item(owner: Owner, variant_id: int, quantity: int = 1) -> CartChange:
    """
    Add a variant to the owner's cart.

    Raises:
        NotFound: unknown variant
        OutOfStock: variant unavailable or resulting quantity exceeds stock
        ValidationError: resulting quantity exceeds MAX_LINE_QUANTITY
    """
    def _op():
        with atomic():
            return _add_item_locked(owner, variant_id, quantity)

    return run_with_retry(_op)


def update_quantity(owner: Owner, cart_item_id: int, quantity: int) -> CartItem:
    """
    Set a line's quantity (>= 1).

    Raises:
        NotFound: the line does not exist or is not the owner's
        OutOfStock: quantity exceeds stock
    """
    if quantity < 1:
        raise ValueError("quantity must be >= 1")

    with atomic():
        item = _find_owned_item(owner, cart_item_id)
        if item is None:
            raise NotFound("Cart item not found", details={"cart_item_id": cart_item_id})

        if quantity > item.quantity:
            _ensure_stock(item.variant_id, quantity)
        item.quantity = quantity

    return item


def remove_item(owner: Owner, cart_item_id: int) -> bool:
    """
    Remove a line. Idempotent: returns False when there was nothing to remove.
    """
    with atomic():
        deleted = (
            db.session.query(CartItem)
            .filter(CartItem.id == cart_item_id, owner_filter(CartItem, owner))
            .delete(synchronize_session=False)
        )
    return bool(deleted)


def get_cart(owner: Owner) -> list[CartItem]:
    """Current cart lines, oldest first. Prices are snapshots."""
    return (
        db.session.query(CartItem)
        .filter(owner_filter(CartItem, owner))
        .order_by(CartItem.created_at.asc(), CartItem.id.asc())
        .all()
    )


def clear_cart(owner: Owner) -> int:
    with atomic():
        deleted = (
            db.session.query(CartItem)
            .filter(owner_filter(CartItem, owner))
            .delete(synchronize_session=False)
        )
    return deleted


def get_cart_summary(owner: Owner) -> dict:
    """
    Cart lines with totals, plus live price and stock flags per line.

    Totals use the snapshotted prices (what checkout will charge);
    price_changed / in_stock let the caller show staleness.
    """
    items = get_cart(owner)
    lines = []
    subtotal = 0
    for item in items:
        data = item.to_dict()
        live_price = item.variant.price_cents
        available = get_available_quantity(item.variant_id)
        data["current_price_cents"] = live_price
        data["price_changed"] = live_price != item.unit_price_cents
        data["available_quantity"] = available
        data["in_stock"] = available >= item.quantity and item.variant.is_available
        lines.append(data)
        subtotal += item.line_total_cents

    return {
        "items": lines,
        "item_count": len(items),
        "total_quantity": sum(item.quantity for item in items),
        **compute_totals(subtotal),
    }
