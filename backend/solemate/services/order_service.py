# Overview: Service-layer operations for orders and checkout; encapsulates business logic and database work.

"""
Order / Checkout Service

WHY: Orders are immutable purchase records. Line items are price-frozen
copies of the cart, never live references to variant prices.

STATE MACHINE (Order.status):
    PENDING -> PAID -> SHIPPED -> DELIVERED
    PENDING | PAID -> CANCELLED
No self transitions. Anything else raises InvalidTransition.

PAYMENT STATUS (Order.payment_status):
    PENDING -> SUCCESS | FAILED, FAILED -> SUCCESS (retried payment).
    SUCCESS is terminal.

TRANSACTIONS:
- checkout: order + items + address + stock REMOVE movements + cart clear
  commit together or not at all.
- cancel: status change + stock RELEASE movements commit together.
- payment FAILED: stock RELEASE commits with the status change; leaving
  FAILED takes the stock again (REMOVE) or cancels the order.

The ledger rows tagged with order_id tell how much stock an order still
holds, so a release never returns more than was taken.
"""

from __future__ import annotations

import secrets

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CartItem, Inventory, InventoryLog, Order, OrderItem, OrderAddress, User
from solemate.time_utils import utcnow, to_utc_z
from .concurrency import atomic, lock_for_update, run_with_retry
from .errors import EmptyCart, InvalidTransition, NotFound, OutOfStock, Unauthorized
from .inventory_service import record_movement, MOVEMENT_REMOVE, MOVEMENT_RELEASE
from .owner import Owner, GuestOwner, UserOwner, owner_filter, owns
from .pricing_service import compute_totals


# =============================================================================
# STATUS CONSTANTS
# =============================================================================

STATUS_PENDING = "PENDING"
STATUS_PAID = "PAID"
STATUS_SHIPPED = "SHIPPED"
STATUS_DELIVERED = "DELIVERED"
STATUS_CANCELLED = "CANCELLED"

ORDER_STATUSES = [STATUS_PENDING, STATUS_PAID, STATUS_SHIPPED, STATUS_DELIVERED, STATUS_CANCELLED]

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_PAID, STATUS_CANCELLED},
    STATUS_PAID: {STATUS_SHIPPED, STATUS_CANCELLED},
    STATUS_SHIPPED: {STATUS_DELIVERED},
    STATUS_DELIVERED: set(),
    STATUS_CANCELLED: set(),
}

CANCELLABLE_STATUSES = {STATUS_PENDING, STATUS_PAID}

PAYMENT_PENDING = "PENDING"
PAYMENT_SUCCESS = "SUCCESS"
PAYMENT_FAILED = "FAILED"

PAYMENT_STATUSES = [PAYMENT_PENDING, PAYMENT_SUCCESS, PAYMENT_FAILED]

ALLOWED_PAYMENT_TRANSITIONS = {
    PAYMENT_PENDING: {PAYMENT_SUCCESS, PAYMENT_FAILED},
    PAYMENT_FAILED: {PAYMENT_SUCCESS, PAYMENT_PENDING},
    PAYMENT_SUCCESS: set(),
}

METHOD_COD = "COD"
METHOD_ONLINE = "ONLINE"
PAYMENT_METHODS = [METHOD_COD, METHOD_ONLINE]

ORDER_NUMBER_ATTEMPTS = 5


# =============================================================================
# IDENTIFIERS
# =============================================================================

def generate_order_number() -> str:
    """Human-presentable order number, e.g. ORD-20261019-9F3A1C2B."""
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = f"ORD-{utcnow():%Y%m%d}-{secrets.token_hex(4).upper()}"
        exists = db.session.query(Order.id).filter_by(order_number=candidate).first()
        if exists is None:
            return candidate
    raise RuntimeError("Could not allocate a unique order number")


def generate_tracking_token() -> str:
    """256-bit URL-safe token; the sole guard for unauthenticated order lookup."""
    return secrets.token_urlsafe(32)


# =============================================================================
# CHECKOUT
# =============================================================================

def _check_stock_locked(items: list[CartItem]) -> None:
    insufficient = []
    for item in items:
        inventory = lock_for_update(
            db.session.query(Inventory).filter_by(variant_id=item.variant_id)
        ).first()
        available = inventory.quantity if inventory else 0
        variant = item.variant
        if not variant.is_available or not variant.product.is_active:
            available = 0
        if available < item.quantity:
            insufficient.append({
                "cart_item_id": item.id,
                "variant_id": item.variant_id,
                "requested_quantity": item.quantity,
                "available_quantity": available,
            })

    if insufficient:
        raise OutOfStock(
            "Some items in your cart are no longer available in the requested quantity",
            details={"items": insufficient},
        )


def _contact_for(owner: Owner, guest_contact: dict | None) -> dict:
    if isinstance(owner, UserOwner):
        user = db.session.query(User).filter_by(id=owner.user_id).first()
        if user is None:
            raise NotFound("User not found")
        return {"user_id": user.id}

    if not guest_contact:
        raise ValueError("guest_contact is required for guest checkout")
    return {
        "guest_session_id": owner.session_id,
        "guest_name": guest_contact["name"],
        "guest_email": guest_contact["email"],
        "guest_phone": guest_contact["phone"],
    }


def checkout(
    owner: Owner,
    shipping_address: dict,
    payment_method: str,
    guest_contact: dict | None = None,
) -> Order:
    """
    Convert the owner's cart into a PENDING order.

    Raises:
        EmptyCart: the cart has no lines
        OutOfStock: any line's stock dropped below its quantity since it was added
        ValueError: unknown payment method, or guest checkout without contact
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValueError(f"Invalid payment method: {payment_method}. Must be one of {PAYMENT_METHODS}")

    def _op() -> Order:
        with atomic():
            items = lock_for_update(
                db.session.query(CartItem)
                .filter(owner_filter(CartItem, owner))
                .order_by(CartItem.id.asc())
            ).all()
            if not items:
                raise EmptyCart("Your cart is empty")

            ownership = _contact_for(owner, guest_contact)
            _check_stock_locked(items)

            subtotal = sum(item.line_total_cents for item in items)
            totals = compute_totals(subtotal)

            order = Order(
                order_number=generate_order_number(),
                tracking_token=generate_tracking_token(),
                status=STATUS_PENDING,
                payment_status=PAYMENT_PENDING,
                payment_method=payment_method,
                **ownership,
                **totals,
            )
            db.session.add(order)
            db.session.flush()

            for item in items:
                variant = item.variant
                db.session.add(OrderItem(
                    order_id=order.id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    product_name=variant.product.name,
                    sku=variant.sku,
                    size=variant.size,
                    color=variant.color,
                    unit_price_cents=item.unit_price_cents,
                    quantity=item.quantity,
                    line_total_cents=item.line_total_cents,
                ))
                record_movement(
                    variant_id=item.variant_id,
                    movement_type=MOVEMENT_REMOVE,
                    quantity=item.quantity,
                    order_id=order.id,
                    note=f"Order {order.order_number}",
                    performed_by="checkout",
                    commit=False,
                )

            db.session.add(OrderAddress(order_id=order.id, **shipping_address))

            for item in items:
                db.session.delete(item)
            db.session.flush()

        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Order %s placed by %s owner (total %s cents)",
        order.order_number, owner.kind, order.total_amount_cents,
    )
    return order


# =============================================================================
# STOCK HELD BY AN ORDER
# =============================================================================

def _held_by_order(order: Order) -> dict[int, int]:
    """Units of each variant the order currently holds, summed from its ledger rows."""
    rows = (
        db.session.query(InventoryLog.variant_id, func.sum(InventoryLog.quantity))
        .filter(InventoryLog.order_id == order.id)
        .group_by(InventoryLog.variant_id)
        .all()
    )
    return {variant_id: -int(total) for variant_id, total in rows if total and total < 0}


def _release_stock_locked(order: Order, note: str, performed_by: str) -> None:
    """Return whatever the order still holds. Never releases more than was taken."""
    for variant_id, held in sorted(_held_by_order(order).items()):
        record_movement(
            variant_id=variant_id,
            movement_type=MOVEMENT_RELEASE,
            quantity=held,
            order_id=order.id,
            note=note,
            performed_by=performed_by,
            commit=False,
        )


def _reserve_stock_locked(order: Order, performed_by: str) -> bool:
    """
    Take the order's stock again after it was released.

    Returns False, recording nothing, when any variant falls short.
    A no-op when the order already holds everything.
    """
    wanted: dict[int, int] = {}
    for item in order.items:
        wanted[item.variant_id] = wanted.get(item.variant_id, 0) + item.quantity

    held = _held_by_order(order)
    missing = {
        variant_id: quantity - held.get(variant_id, 0)
        for variant_id, quantity in wanted.items()
        if quantity > held.get(variant_id, 0)
    }

    for variant_id in sorted(missing):
        inventory = lock_for_update(
            db.session.query(Inventory).filter_by(variant_id=variant_id)
        ).first()
        if inventory is None or inventory.quantity < missing[variant_id]:
            return False

    for variant_id in sorted(missing):
        record_movement(
            variant_id=variant_id,
            movement_type=MOVEMENT_REMOVE,
            quantity=missing[variant_id],
            order_id=order.id,
            note=f"Order {order.order_number} stock re-reserved",
            performed_by=performed_by,
            commit=False,
        )
    return True


# =============================================================================
# CUSTOMER-FACING READS / CANCEL
# =============================================================================

def _get_order_for_owner(owner: Owner, order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    if not owns(order, owner):
        raise Unauthorized("This order belongs to another account", details={"order_id": order_id})
    return order


def get_order(owner: Owner, order_id: int) -> Order:
    return _get_order_for_owner(owner, order_id)


def list_orders(
    owner: Owner,
    *,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    base_query = db.session.query(Order).filter(owner_filter(Order, owner))
    if status:
        base_query = base_query.filter(Order.status == status)
    return _paginate(base_query.order_by(Order.created_at.desc(), Order.id.desc()), page, per_page)


def _cancel_locked(order: Order, reason: str | None, performed_by: str) -> Order:
    if order.status not in CANCELLABLE_STATUSES:
        raise InvalidTransition(
            f"Cannot cancel an order that is {order.status}",
            details={"order_id": order.id, "status": order.status},
        )

    order.status = STATUS_CANCELLED
    order.cancelled_at = utcnow()
    order.cancel_reason = reason

    _release_stock_locked(order, f"Order {order.order_number} cancelled", performed_by)

    if order.payment_status == PAYMENT_SUCCESS:
        current_app.logger.warning("Order %s cancelled after payment; refund required", order.order_number)
    return order


def cancel(owner: Owner, order_id: int, reason: str | None = None) -> Order:
    """
    Cancel an order the owner placed. Only PENDING or PAID orders qualify.

    Raises:
        NotFound: no such order
        Unauthorized: order belongs to someone else
        InvalidTransition: order is SHIPPED, DELIVERED or already CANCELLED
    """
    with atomic():
        order = _get_order_for_owner(owner, order_id, lock=True)
        _cancel_locked(order, reason, performed_by=owner.kind)

    current_app.logger.info("Order %s cancelled by %s", order.order_number, owner.kind)
    return order


def order_summary(order: Order, *, include_token: bool = False) -> dict:
    """Public view of an order for unauthenticated tracking."""
    data = {
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "subtotal_cents": order.subtotal_cents,
        "tax_cents": order.tax_cents,
        "shipping_cents": order.shipping_cents,
        "total_amount_cents": order.total_amount_cents,
        "created_at": to_utc_z(order.created_at),
        "courier_name": order.courier_name,
        "courier_tracking_number": order.courier_tracking_number,
        "items": [item.to_dict() for item in order.items],
        "address": order.address.to_dict() if order.address else None,
    }
    if include_token:
        data["tracking_token"] = order.tracking_token
    return data


def track_by_token(tracking_token: str | None) -> dict:
    """
    Public, unauthenticated lookup. The token must match exactly.

    Raises NotFound for empty or unknown tokens.
    """
    if not tracking_token or not isinstance(tracking_token, str):
        raise NotFound("Order not found")
    order = db.session.query(Order).filter(Order.tracking_token == tracking_token).first()
    if order is None:
        raise NotFound("Order not found")
    return order_summary(order)


def find_by_order_number(order_number: str) -> Order | None:
    return db.session.query(Order).filter_by(order_number=order_number).first()


# =============================================================================
# ADMIN / PAYMENT-DRIVEN TRANSITIONS
# =============================================================================

def _get_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def admin_get_order(order_id: int) -> Order:
    return _get_order(order_id)


def admin_list_orders(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    base_query = db.session.query(Order)
    if status:
        base_query = base_query.filter(Order.status == status)
    if payment_status:
        base_query = base_query.filter(Order.payment_status == payment_status)
    if search:
        term = f"%{search.strip()}%"
        base_query = base_query.filter(
            db.or_(
                Order.order_number.ilike(term),
                Order.guest_email.ilike(term),
                Order.guest_phone.ilike(term),
            )
        )
    return _paginate(base_query.order_by(Order.created_at.desc(), Order.id.desc()), page, per_page)


def _transition(order: Order, new_status: str) -> None:
    if new_status not in ALLOWED_TRANSITIONS.get(order.status, set()):
        raise InvalidTransition(
            f"Cannot change order status from {order.status} to {new_status}",
            details={"order_id": order.id, "from": order.status, "to": new_status},
        )
    order.status = new_status


def update_status(
    order_id: int,
    new_status: str,
    *,
    reason: str | None = None,
    courier_name: str | None = None,
    courier_tracking_number: str | None = None,
    performed_by: str = "admin",
) -> Order:
    """
    Admin status change along the state machine.

    CANCELLED goes through the same path as a customer cancel (restock).
    DELIVERED on a cash-on-delivery order marks the payment collected.
    """
    if new_status not in ORDER_STATUSES:
        raise ValueError(f"Invalid status: {new_status}. Must be one of {ORDER_STATUSES}")

    with atomic():
        order = _get_order(order_id, lock=True)

        if new_status == STATUS_CANCELLED:
            _cancel_locked(order, reason, performed_by=performed_by)
        else:
            _transition(order, new_status)
            if new_status == STATUS_PAID and not _reserve_stock_locked(order, performed_by):
                raise OutOfStock(
                    "Items in this order are no longer in stock",
                    details={"order_id": order.id},
                )
            now = utcnow()
            if new_status == STATUS_PAID and order.paid_at is None:
                order.paid_at = now
            elif new_status == STATUS_SHIPPED:
                order.shipped_at = now
                if courier_name:
                    order.courier_name = courier_name
                if courier_tracking_number:
                    order.courier_tracking_number = courier_tracking_number
            elif new_status == STATUS_DELIVERED:
                order.delivered_at = now
                if order.payment_method == METHOD_COD and order.payment_status == PAYMENT_PENDING:
                    order.payment_status = PAYMENT_SUCCESS
                    order.paid_at = order.paid_at or now

    current_app.logger.info("Order %s moved to %s by %s", order.order_number, new_status, performed_by)
    return order


def _apply_payment_status_locked(order: Order, payment_status: str, gateway_payment_id: str | None) -> Order:
    if payment_status == order.payment_status:
        return order

    if payment_status not in ALLOWED_PAYMENT_TRANSITIONS.get(order.payment_status, set()):
        raise InvalidTransition(
            f"Cannot change payment status from {order.payment_status} to {payment_status}",
            details={"order_id": order.id, "from": order.payment_status, "to": payment_status},
        )

    previous = order.payment_status
    order.payment_status = payment_status
    if gateway_payment_id:
        order.gateway_payment_id = gateway_payment_id

    if order.status == STATUS_PENDING:
        if payment_status == PAYMENT_FAILED:
            _release_stock_locked(order, f"Order {order.order_number} payment failed", "payment")
        elif previous == PAYMENT_FAILED and not _reserve_stock_locked(order, "payment"):
            if payment_status == PAYMENT_PENDING:
                raise OutOfStock(
                    "Items in this order are no longer in stock",
                    details={"order_id": order.id},
                )
            order.status = STATUS_CANCELLED
            order.cancelled_at = utcnow()
            order.cancel_reason = "Stock no longer available when payment was captured"

    if payment_status == PAYMENT_SUCCESS:
        order.paid_at = utcnow()
        if order.status == STATUS_PENDING:
            order.status = STATUS_PAID
        elif order.status == STATUS_CANCELLED:
            current_app.logger.warning(
                "Payment captured for cancelled order %s; refund required", order.order_number
            )
    return order


def update_payment_status(
    order_id: int,
    payment_status: str,
    gateway_payment_id: str | None = None,
) -> Order:
    """
    Set the payment status. SUCCESS moves a PENDING order to PAID.
    Repeating the current status is a no-op.

    FAILED on a PENDING order releases its stock in the same transaction.
    Leaving FAILED takes the stock again; if it is gone, a captured payment
    cancels the order (refund required) and a retry raises OutOfStock.
    """
    if payment_status not in PAYMENT_STATUSES:
        raise ValueError(f"Invalid payment status: {payment_status}. Must be one of {PAYMENT_STATUSES}")

    with atomic():
        order = _get_order(order_id, lock=True)
        _apply_payment_status_locked(order, payment_status, gateway_payment_id)
    return order


def get_order_analytics() -> dict:
    """Order counts per status and revenue from successfully paid, non-cancelled orders."""
    counts = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )
    revenue_row = db.session.query(
        func.coalesce(func.sum(Order.total_amount_cents), 0),
        func.count(Order.id),
    ).filter(
        Order.payment_status == PAYMENT_SUCCESS,
        Order.status != STATUS_CANCELLED,
    ).one()

    revenue_cents = int(revenue_row[0] or 0)
    paid_orders = int(revenue_row[1] or 0)

    return {
        "total_orders": sum(counts.values()),
        "by_status": {status: int(counts.get(status, 0)) for status in ORDER_STATUSES},
        "paid_orders": paid_orders,
        "revenue_cents": revenue_cents,
        "average_order_value_cents": (revenue_cents // paid_orders) if paid_orders else 0,
    }


def _paginate(query, page: int | None, per_page: int | None) -> dict:
    per_page = min(per_page or 20, 100)
    page = max(page or 1, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    orders = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [o.to_dict(include_items=False) for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
