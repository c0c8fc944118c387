# backend/solemate/services/catalog_service.py
"""
Catalog Service

Public browsing only ever sees active products. Admin operations create and
patch products and variants; a new variant's opening stock goes through
inventory_service so it lands in the inventory log like every other movement.
"""
from __future__ import annotations

import re

from sqlalchemy import or_

from ..extensions import db
from ..models import Product, ProductVariant
from ..validation import ConflictError
from .concurrency import atomic
from .errors import NotFound
from .inventory_service import record_movement, MOVEMENT_ADD

PRODUCT_MUTABLE_FIELDS = {"name", "brand", "category", "gender", "description", "is_active"}
VARIANT_MUTABLE_FIELDS = {"sku", "size", "color", "price_cents", "compare_at_price_cents", "is_available"}
VALID_GENDERS = {"MEN", "WOMEN", "KIDS", "UNISEX"}


def _slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "product"


def _unique_slug(name: str) -> str:
    base = _slugify(name)
    slug = base
    n = 2
    while db.session.query(Product.id).filter_by(slug=slug).first() is not None:
        slug = f"{base}-{n}"
        n += 1
    return slug


def _apply_patch(obj, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(obj, k, v)


def _check_gender(patch: dict) -> None:
    if "gender" in patch and patch["gender"] is not None:
        gender = str(patch["gender"]).upper()
        if gender not in VALID_GENDERS:
            raise ConflictError(f"gender must be one of {', '.join(sorted(VALID_GENDERS))}")
        patch["gender"] = gender


def _check_sku_free(sku: str, exclude_variant_id: int | None = None) -> None:
    query = db.session.query(ProductVariant.id).filter(ProductVariant.sku == sku)
    if exclude_variant_id is not None:
        query = query.filter(ProductVariant.id != exclude_variant_id)
    if query.first() is not None:
        raise ConflictError(f"SKU already exists: {sku}")


def list_products(
    *,
    brand: str | None = None,
    category: str | None = None,
    gender: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata.
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if brand:
        base_query = base_query.filter(Product.brand == brand)
    if category:
        base_query = base_query.filter(Product.category == category)
    if gender:
        base_query = base_query.filter(Product.gender == gender.upper())
    if search:
        term = f"%{search.strip()}%"
        base_query = base_query.filter(
            or_(Product.name.ilike(term), Product.brand.ilike(term), Product.description.ilike(term))
        )
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page or 1, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict(include_variants=True) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int, *, include_inactive: bool = False) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None or (not product.is_active and not include_inactive):
        raise NotFound("Product not found", details={"product_id": product_id})
    return product


def get_variant(variant_id: int) -> ProductVariant:
    variant = db.session.query(ProductVariant).filter_by(id=variant_id).first()
    if variant is None:
        raise NotFound("Variant not found", details={"variant_id": variant_id})
    return variant


def _add_variant(product: Product, patch: dict, initial_quantity: int, performed_by: str | None) -> ProductVariant:
    _check_sku_free(patch["sku"])
    variant = ProductVariant(product_id=product.id)
    _apply_patch(variant, patch, VARIANT_MUTABLE_FIELDS)
    db.session.add(variant)
    db.session.flush()

    if initial_quantity:
        record_movement(
            variant_id=variant.id,
            movement_type=MOVEMENT_ADD,
            quantity=initial_quantity,
            note="Opening stock",
            performed_by=performed_by,
            commit=False,
        )
    return variant


def create_product(
    *,
    patch: dict,
    variants: list[tuple[dict, int]] | None = None,
    performed_by: str | None = None,
) -> Product:
    """
    Create a product and, optionally, its variants with opening stock.

    `variants` is a list of (validated variant patch, initial quantity).
    """
    _check_gender(patch)
    with atomic():
        product = Product(slug=_unique_slug(patch["name"]))
        _apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
        db.session.add(product)
        db.session.flush()

        for variant_patch, initial_quantity in variants or []:
            _add_variant(product, variant_patch, initial_quantity, performed_by)

    return product


def update_product(product_id: int, patch: dict) -> Product:
    _check_gender(patch)
    with atomic():
        product = get_product(product_id, include_inactive=True)
        _apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
    return product


def deactivate_product(product_id: int) -> Product:
    """Soft delete: hides the product from the storefront, order history keeps its rows."""
    with atomic():
        product = get_product(product_id, include_inactive=True)
        product.is_active = False
    return product


def create_variant(
    product_id: int,
    patch: dict,
    initial_quantity: int = 0,
    performed_by: str | None = None,
) -> ProductVariant:
    with atomic():
        product = get_product(product_id, include_inactive=True)
        variant = _add_variant(product, patch, initial_quantity, performed_by)
    return variant


def update_variant(variant_id: int, patch: dict) -> ProductVariant:
    with atomic():
        variant = get_variant(variant_id)
        if "sku" in patch:
            _check_sku_free(patch["sku"], exclude_variant_id=variant_id)
        _apply_patch(variant, patch, VARIANT_MUTABLE_FIELDS)
    return variant
