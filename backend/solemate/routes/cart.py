# Overview: Flask API routes for cart operations; parses input and returns JSON responses.

# backend/solemate/routes/cart.py
"""
Cart routes.

Owner resolution (user vs guest) happens in @with_owner; handlers only see
g.owner. A guest without a valid X-Session-Id gets a new session, and the
token comes back in the X-Session-Id response header.
"""

from flask import Blueprint, request, g, current_app

from ..decorators import with_owner
from ..responses import success_response, info_response, error_response, error_response_for, validation_error
from ..services import cart_service
from ..services.errors import CommerceError
from ..validation import ValidationError, parse_int, parse_quantity, require_fields


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _cart_payload(owner) -> dict:
    items = cart_service.get_cart(owner)
    return {"items": [item.to_dict() for item in items], "count": len(items)}


@cart_bp.get("")
@with_owner()
def get_cart_route():
    return success_response("Cart retrieved", _cart_payload(g.owner))


@cart_bp.get("/summary")
@with_owner()
def cart_summary_route():
    return success_response("Cart summary retrieved", cart_service.get_cart_summary(g.owner))


@cart_bp.post("/items")
@with_owner()
def add_item_route():
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "variant_id")
        variant_id = parse_int(payload.get("variant_id"), "variant_id")
        quantity = parse_quantity(payload.get("quantity", 1))
        change = cart_service.add_item(g.owner, variant_id, quantity)
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except Exception:
        current_app.logger.exception("Add to cart failed")
        return error_response("Internal server error", 500)

    return success_response(change.message, change.item.to_dict(), status=201 if change.created else 200)


@cart_bp.patch("/items/<int:item_id>")
@with_owner()
def update_item_route(item_id: int):
    """Set a line's quantity. Quantity 0 removes the line."""
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "quantity")
        quantity = parse_quantity(payload.get("quantity"), allow_zero=True)
        if quantity == 0:
            removed = cart_service.remove_item(g.owner, item_id)
            if not removed:
                return error_response("Cart item not found", 404)
            return success_response("Item removed from cart", {"removed": True})
        item = cart_service.update_quantity(g.owner, item_id, quantity)
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except Exception:
        current_app.logger.exception("Cart update failed")
        return error_response("Internal server error", 500)

    return success_response("Cart updated", item.to_dict())


@cart_bp.delete("/items/<int:item_id>")
@with_owner()
def remove_item_route(item_id: int):
    try:
        removed = cart_service.remove_item(g.owner, item_id)
    except CommerceError as e:
        return error_response_for(e)

    if not removed:
        return info_response("Item was not in your cart", {"removed": False})
    return success_response("Item removed from cart", {"removed": True})


@cart_bp.delete("")
@with_owner()
def clear_cart_route():
    try:
        cleared = cart_service.clear_cart(g.owner)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Cart cleared", {"removed": cleared})
