# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/solemate/services/inventory_service.py

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Inventory, InventoryLog, ProductVariant
from .concurrency import atomic, lock_for_update
from .errors import NotFound, OutOfStock
"""
SoleMate Inventory Invariants (authoritative)

- Inventory.quantity is the stock on hand for a variant and is never negative.
- Every change to Inventory.quantity appends exactly one InventoryLog row in
  the same DB transaction. InventoryLog.quantity is the signed delta, so
  SUM(InventoryLog.quantity) == Inventory.quantity at all times.
- InventoryLog is append-only (no updates/deletes).

Movement types:
- ADD: stock received (positive)
- REMOVE: stock leaving with an order (negative)
- ADJUSTMENT: manual correction (either sign)
- RETURN: customer return back to stock (positive)
- RELEASE: stock released from a cancelled order (positive)

Add-to-cart and checkout check stock without reserving it in between.
"""


MOVEMENT_ADD = "ADD"
MOVEMENT_REMOVE = "REMOVE"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_RELEASE = "RELEASE"

VALID_MOVEMENT_TYPES = {
    MOVEMENT_ADD,
    MOVEMENT_REMOVE,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_RETURN,
    MOVEMENT_RELEASE,
}

_POSITIVE_TYPES = {MOVEMENT_ADD, MOVEMENT_RETURN, MOVEMENT_RELEASE}


def get_available_quantity(variant_id: int) -> int:
    """Stock on hand for a variant (0 if no inventory row exists)."""
    qty = db.session.query(Inventory.quantity).filter_by(variant_id=variant_id).scalar()
    return int(qty or 0)


def _get_or_create_inventory(variant_id: int, *, lock: bool = False) -> Inventory:
    query = db.session.query(Inventory).filter_by(variant_id=variant_id)
    if lock:
        query = lock_for_update(query)
    inventory = query.first()
    if inventory is None:
        inventory = Inventory(variant_id=variant_id, quantity=0)
        db.session.add(inventory)
        db.session.flush()
    return inventory


def _signed_delta(movement_type: str, quantity: int) -> int:
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValueError(f"Invalid movement type: {movement_type}")
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValueError("quantity must be an integer")

    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity == 0:
            raise ValueError("quantity must be non-zero for ADJUSTMENT")
        return quantity

    if quantity <= 0:
        raise ValueError(f"quantity must be > 0 for {movement_type}")
    if movement_type in _POSITIVE_TYPES:
        return quantity
    return -quantity


def record_movement(
    *,
    variant_id: int,
    movement_type: str,
    quantity: int,
    note: str | None = None,
    order_id: int | None = None,
    performed_by: str | None = None,
    commit: bool = True,
) -> InventoryLog:
    """
    Apply a stock movement and append its log row.

    `quantity` is a magnitude for ADD/REMOVE/RETURN/RELEASE and a signed
    delta for ADJUSTMENT.

    commit=False lets checkout and cancellation include the movement in
    their own transaction.

    Raises:
        NotFound: variant does not exist
        OutOfStock: the movement would take stock below zero
        ValueError: invalid type or quantity
    """
    delta = _signed_delta(movement_type, quantity)

    def _apply() -> InventoryLog:
        variant = db.session.query(ProductVariant).filter_by(id=variant_id).first()
        if variant is None:
            raise NotFound("Variant not found", details={"variant_id": variant_id})

        inventory = _get_or_create_inventory(variant_id, lock=True)
        new_quantity = inventory.quantity + delta
        if new_quantity < 0:
            raise OutOfStock(
                "Insufficient inventory",
                details={
                    "variant_id": variant_id,
                    "requested_quantity": -delta,
                    "available_quantity": inventory.quantity,
                },
            )

        inventory.quantity = new_quantity

        log = InventoryLog(
            variant_id=variant_id,
            order_id=order_id,
            type=movement_type,
            quantity=delta,
            note=note,
            performed_by=performed_by,
        )
        db.session.add(log)
        db.session.flush()
        return log

    if not commit:
        return _apply()

    with atomic():
        log = _apply()
    current_app.logger.info(
        "Inventory %s of %s for variant %s", movement_type, delta, variant_id
    )
    return log


def set_quantity(
    *,
    variant_id: int,
    quantity: int,
    note: str | None = None,
    performed_by: str | None = None,
) -> Inventory:
    """
    Set stock to an absolute level by writing an ADJUSTMENT delta.

    A no-op (same level) writes nothing.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise ValueError("quantity must be a non-negative integer")

    with atomic():
        variant = db.session.query(ProductVariant).filter_by(id=variant_id).first()
        if variant is None:
            raise NotFound("Variant not found", details={"variant_id": variant_id})

        inventory = _get_or_create_inventory(variant_id, lock=True)
        delta = quantity - inventory.quantity
        if delta != 0:
            record_movement(
                variant_id=variant_id,
                movement_type=MOVEMENT_ADJUSTMENT,
                quantity=delta,
                note=note or f"Set to {quantity}",
                performed_by=performed_by,
                commit=False,
            )

    return inventory


def get_inventory(variant_id: int) -> dict:
    variant = db.session.query(ProductVariant).filter_by(id=variant_id).first()
    if variant is None:
        raise NotFound("Variant not found", details={"variant_id": variant_id})
    return {
        "variant_id": variant_id,
        "sku": variant.sku,
        "quantity": get_available_quantity(variant_id),
    }


def get_logs(variant_id: int, page: int = 1, per_page: int = 20) -> dict:
    """Newest-first movement history with pagination metadata."""
    per_page = min(per_page or 20, 100)
    page = max(page or 1, 1)

    base_query = (
        db.session.query(InventoryLog)
        .filter_by(variant_id=variant_id)
        .order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
    )

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    logs = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [log.to_dict() for log in logs],
        "count": len(logs),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
