# Overview: Flask API routes for wishlist operations; parses input and returns JSON responses.

# backend/solemate/routes/wishlist.py
from flask import Blueprint, request, g, current_app

from ..decorators import with_owner
from ..responses import success_response, error_response, error_response_for, validation_error
from ..services import wishlist_service
from ..services.errors import CommerceError
from ..validation import ValidationError, parse_int, parse_quantity, require_fields


wishlist_bp = Blueprint("wishlist", __name__, url_prefix="/api/wishlist")


@wishlist_bp.get("")
@with_owner()
def get_wishlist_route():
    items = wishlist_service.get_wishlist(g.owner)
    return success_response("Wishlist retrieved", {"items": [i.to_dict() for i in items], "count": len(items)})


@wishlist_bp.post("/items")
@with_owner()
def add_item_route():
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "product_id")
        product_id = parse_int(payload.get("product_id"), "product_id")
        variant_id = payload.get("variant_id")
        if variant_id is not None:
            variant_id = parse_int(variant_id, "variant_id")
        change = wishlist_service.add_item(g.owner, product_id, variant_id)
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except Exception:
        current_app.logger.exception("Add to wishlist failed")
        return error_response("Internal server error", 500)

    return success_response(change.message, change.item.to_dict(), status=201 if change.created else 200)


@wishlist_bp.delete("/items/<int:item_id>")
@with_owner()
def remove_item_route(item_id: int):
    try:
        removed = wishlist_service.remove_item(g.owner, item_id)
    except CommerceError as e:
        return error_response_for(e)

    message = "Removed from wishlist" if removed else "Item was not in your wishlist"
    return success_response(message, {"removed": removed})


@wishlist_bp.post("/items/<int:item_id>/move-to-cart")
@with_owner()
def move_to_cart_route(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        quantity = parse_quantity(payload.get("quantity", 1))
        change = wishlist_service.move_to_cart(g.owner, item_id, quantity)
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except Exception:
        current_app.logger.exception("Move to cart failed")
        return error_response("Internal server error", 500)

    return success_response(change.message, change.item.to_dict())


@wishlist_bp.delete("")
@with_owner()
def clear_wishlist_route():
    try:
        cleared = wishlist_service.clear_wishlist(g.owner)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Wishlist cleared", {"removed": cleared})
