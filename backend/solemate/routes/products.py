# Overview: Flask API routes for the public product catalog; parses input and returns JSON responses.

# backend/solemate/routes/products.py
"""
Public catalog routes. No authentication; inactive products are hidden.
Admin product writes live in routes/admin.py.
"""
from flask import Blueprint, request

from ..responses import success_response, error_response_for
from ..services import catalog_service
from ..services.errors import CommerceError


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    Query params:
    - brand, category, gender: exact filters
    - search: substring match on name, brand, description
    - page: int (optional, default 1)
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    result = catalog_service.list_products(
        brand=request.args.get("brand"),
        category=request.args.get("category"),
        gender=request.args.get("gender"),
        search=request.args.get("search"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return success_response("Products retrieved", result)


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Product retrieved", product.to_dict(include_variants=True))
