# Overview: Flask API routes for checkout and customer order operations; parses input and returns JSON responses.

# backend/solemate/routes/orders.py
"""
Customer order routes.

Checkout works for both users and guests. Guests must send a guest_contact
object; the order is then reachable through its tracking token (public
/track/<token>) or by the same guest session.
"""

from flask import Blueprint, request, g, current_app

from ..decorators import with_owner
from ..responses import success_response, error_response, error_response_for, validation_error
from ..services import order_service
from ..services.errors import CommerceError
from ..services.owner import GuestOwner
from ..validation import ValidationError, parse_guest_contact, parse_shipping_address, require_fields


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/checkout")
@with_owner()
def checkout_route():
    """
    Place an order from the caller's cart.

    Body:
        shipping_address: {name, phone, address_line1, address_line2?, city, state, postal_code, country?}
        payment_method: COD | ONLINE
        guest_contact: {name, email, phone} (guests only)
    """
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "shipping_address", "payment_method")
        shipping_address = parse_shipping_address(payload.get("shipping_address"))
        payment_method = str(payload.get("payment_method")).strip().upper()
        guest_contact = None
        if isinstance(g.owner, GuestOwner):
            guest_contact = parse_guest_contact(payload.get("guest_contact"))

        order = order_service.checkout(g.owner, shipping_address, payment_method, guest_contact)
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except ValueError as e:
        return validation_error(str(e))
    except Exception:
        current_app.logger.exception("Checkout failed")
        return error_response("Internal server error", 500)

    return success_response(f"Order {order.order_number} placed", order.to_dict(), status=201)


@orders_bp.get("")
@with_owner(create_session=False)
def list_orders_route():
    status = request.args.get("status")
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)

    result = order_service.list_orders(g.owner, status=status, page=page, per_page=per_page)
    return success_response("Orders retrieved", result)


@orders_bp.get("/<int:order_id>")
@with_owner(create_session=False)
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.owner, order_id)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Order retrieved", order.to_dict())


@orders_bp.post("/<int:order_id>/cancel")
@with_owner(create_session=False)
def cancel_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        reason = str(payload.get("reason") or "").strip()[:255] or None
        order = order_service.cancel(g.owner, order_id, reason)
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except Exception:
        current_app.logger.exception("Order cancellation failed")
        return error_response("Internal server error", 500)

    return success_response("Order cancelled", order.to_dict())


@orders_bp.get("/track/<string:tracking_token>")
def track_order_route(tracking_token: str):
    """Public lookup by tracking token; no authentication."""
    try:
        summary = order_service.track_by_token(tracking_token)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Order found", summary)
