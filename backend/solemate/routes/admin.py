# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/solemate/routes/admin.py
"""
Admin routes for order fulfilment, inventory and catalog management.

Provides endpoints for:
- Orders (list, detail, status, payment status, analytics)
- Inventory (read, set level, record movement, movement log)
- Products (create, update, deactivate, variants)

All endpoints require an authenticated admin.
"""

from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, require_admin
from ..models import Product, ProductVariant
from ..responses import success_response, error_response, error_response_for, validation_error
from ..services import catalog_service, inventory_service, order_service
from ..services.errors import CommerceError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_variant,
    parse_int,
    require_fields,
    ValidationError,
    ConflictError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "brand", "category", "gender", "description", "is_active"},
    required_on_create={"name", "brand", "category"},
)

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "size", "color", "price_cents", "compare_at_price_cents", "is_available"},
    required_on_create={"sku", "size", "color", "price_cents"},
)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _performed_by() -> str:
    return f"admin:{g.current_user.id}"


def _parse_variant(payload: dict, *, partial: bool) -> tuple[dict, int]:
    data = dict(payload)
    initial_quantity = data.pop("initial_quantity", 0)
    patch = validate_payload(model=ProductVariant, payload=data, policy=VARIANT_POLICY, partial=partial)
    enforce_rules_variant(patch)
    initial_quantity = parse_int(initial_quantity, "initial_quantity")
    if initial_quantity < 0:
        raise ValidationError("initial_quantity must be >= 0")
    return patch, initial_quantity


# =============================================================================
# ORDERS
# =============================================================================

@admin_bp.get("/orders")
@require_auth
@require_admin
def list_orders():
    """
    Query params:
    - status, payment_status: exact filters
    - search: order number, guest email or phone
    - page, per_page
    """
    result = order_service.admin_list_orders(
        status=request.args.get("status"),
        payment_status=request.args.get("payment_status"),
        search=request.args.get("search"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return success_response("Orders retrieved", result)


@admin_bp.get("/orders/analytics")
@require_auth
@require_admin
def order_analytics():
    return success_response("Order analytics", order_service.get_order_analytics())


@admin_bp.get("/orders/<int:order_id>")
@require_auth
@require_admin
def get_order(order_id: int):
    try:
        order = order_service.admin_get_order(order_id)
    except CommerceError as e:
        return error_response_for(e)
    return success_response("Order retrieved", order.to_dict())


@admin_bp.patch("/orders/<int:order_id>/status")
@require_auth
@require_admin
def update_order_status(order_id: int):
    """Body: {status, reason?, courier_name?, courier_tracking_number?}"""
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "status")
        order = order_service.update_status(
            order_id,
            str(payload["status"]).strip().upper(),
            reason=payload.get("reason"),
            courier_name=payload.get("courier_name"),
            courier_tracking_number=payload.get("courier_tracking_number"),
            performed_by=_performed_by(),
        )
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except ValueError as e:
        return validation_error(str(e))
    except Exception:
        current_app.logger.exception("Order status update failed")
        return error_response("Internal server error", 500)

    return success_response(f"Order {order.order_number} is now {order.status}", order.to_dict())


@admin_bp.patch("/orders/<int:order_id>/payment-status")
@require_auth
@require_admin
def update_payment_status(order_id: int):
    """Body: {payment_status, gateway_payment_id?}"""
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "payment_status")
        order = order_service.update_payment_status(
            order_id,
            str(payload["payment_status"]).strip().upper(),
            gateway_payment_id=payload.get("gateway_payment_id"),
        )
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except ValueError as e:
        return validation_error(str(e))

    return success_response("Payment status updated", order.to_dict())


# =============================================================================
# INVENTORY
# =============================================================================

@admin_bp.get("/inventory/<int:variant_id>")
@require_auth
@require_admin
def get_inventory(variant_id: int):
    try:
        result = inventory_service.get_inventory(variant_id)
    except CommerceError as e:
        return error_response_for(e)
    return success_response("Inventory retrieved", result)


@admin_bp.put("/inventory/<int:variant_id>")
@require_auth
@require_admin
def set_inventory(variant_id: int):
    """Body: {quantity, note?} sets an absolute stock level."""
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "quantity")
        quantity = parse_int(payload["quantity"], "quantity")
        inventory_service.set_quantity(
            variant_id=variant_id,
            quantity=quantity,
            note=payload.get("note"),
            performed_by=_performed_by(),
        )
        result = inventory_service.get_inventory(variant_id)
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except ValueError as e:
        return validation_error(str(e))

    return success_response("Inventory updated", result)


@admin_bp.post("/inventory/<int:variant_id>/movements")
@require_auth
@require_admin
def record_inventory_movement(variant_id: int):
    """Body: {type: ADD|REMOVE|ADJUSTMENT|RETURN, quantity, note?}"""
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "type", "quantity")
        movement_type = str(payload["type"]).strip().upper()
        if movement_type == inventory_service.MOVEMENT_RELEASE:
            raise ValidationError("RELEASE movements are recorded by order cancellation only")
        log = inventory_service.record_movement(
            variant_id=variant_id,
            movement_type=movement_type,
            quantity=parse_int(payload["quantity"], "quantity"),
            note=payload.get("note"),
            performed_by=_performed_by(),
        )
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except ValueError as e:
        return validation_error(str(e))

    return success_response("Inventory movement recorded", log.to_dict(), status=201)


@admin_bp.get("/inventory/<int:variant_id>/logs")
@require_auth
@require_admin
def inventory_logs(variant_id: int):
    try:
        result = inventory_service.get_logs(
            variant_id,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
    except CommerceError as e:
        return error_response_for(e)
    return success_response("Inventory logs retrieved", result)


# =============================================================================
# PRODUCTS
# =============================================================================

@admin_bp.get("/products")
@require_auth
@require_admin
def list_products():
    result = catalog_service.list_products(
        search=request.args.get("search"),
        include_inactive=True,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return success_response("Products retrieved", result)


@admin_bp.post("/products")
@require_auth
@require_admin
def create_product():
    """
    Body: product fields plus optional `variants`, a list of variant objects
    each with an optional `initial_quantity`.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return validation_error("Invalid JSON payload")

    data = dict(payload)
    variants_raw = data.pop("variants", None) or []

    try:
        patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
        if not isinstance(variants_raw, list):
            raise ValidationError("variants must be a list")
        variants = [_parse_variant(v if isinstance(v, dict) else {}, partial=False) for v in variants_raw]
        product = catalog_service.create_product(patch=patch, variants=variants, performed_by=_performed_by())
    except ValidationError as e:
        return validation_error(str(e))
    except ConflictError as e:
        return error_response(str(e), 409)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Product created", product.to_dict(include_variants=True), status=201)


@admin_bp.put("/products/<int:product_id>")
@require_auth
@require_admin
def update_product(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = catalog_service.update_product(product_id, patch)
    except ValidationError as e:
        return validation_error(str(e))
    except ConflictError as e:
        return error_response(str(e), 409)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Product updated", product.to_dict(include_variants=True))


@admin_bp.delete("/products/<int:product_id>")
@require_auth
@require_admin
def deactivate_product(product_id: int):
    try:
        product = catalog_service.deactivate_product(product_id)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Product deactivated", product.to_dict())


@admin_bp.post("/products/<int:product_id>/variants")
@require_auth
@require_admin
def create_variant(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch, initial_quantity = _parse_variant(payload, partial=False)
        variant = catalog_service.create_variant(
            product_id, patch, initial_quantity=initial_quantity, performed_by=_performed_by()
        )
    except ValidationError as e:
        return validation_error(str(e))
    except ConflictError as e:
        return error_response(str(e), 409)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Variant created", variant.to_dict(), status=201)


@admin_bp.put("/variants/<int:variant_id>")
@require_auth
@require_admin
def update_variant(variant_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_POLICY, partial=True)
        enforce_rules_variant(patch)
        variant = catalog_service.update_variant(variant_id, patch)
    except ValidationError as e:
        return validation_error(str(e))
    except ConflictError as e:
        return error_response(str(e), 409)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Variant updated", variant.to_dict())
