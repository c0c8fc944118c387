from __future__ import annotations

from ..extensions import db
from solemate.time_utils import to_utc_z


# Exactly one owner per row: a user or a guest session, never both.
_EXACTLY_ONE_OWNER = (
    "(user_id IS NOT NULL AND guest_session_id IS NULL) OR "
    "(user_id IS NULL AND guest_session_id IS NOT NULL)"
)


class CartItem(db.Model):
    """
    Cart line owned by a user or a guest session.

    WHY unit_price_cents: the price is snapshotted at add time so the cart
    shows what the shopper agreed to. Live price is read from the variant
    when staleness must be shown.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.CheckConstraint(_EXACTLY_ONE_OWNER, name="ck_cart_items_one_owner"),
        db.CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
        db.UniqueConstraint("user_id", "variant_id", name="uq_cart_items_user_variant"),
        db.UniqueConstraint("guest_session_id", "variant_id", name="uq_cart_items_guest_variant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    guest_session_id = db.Column(db.Integer, db.ForeignKey("guest_sessions.id"), nullable=True, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        variant = self.variant
        product = self.product
        return {
            "id": self.id,
            "user_id": self.user_id,
            "guest_session_id": self.guest_session_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "product_name": product.name if product else None,
            "brand": product.brand if product else None,
            "size": variant.size if variant else None,
            "color": variant.color if variant else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WishlistItem(db.Model):
    """Saved product (optionally a specific variant), same ownership rules as CartItem."""
    __tablename__ = "wishlist_items"
    __table_args__ = (
        db.CheckConstraint(_EXACTLY_ONE_OWNER, name="ck_wishlist_items_one_owner"),
        db.UniqueConstraint("user_id", "product_id", "variant_id", name="uq_wishlist_items_user_product_variant"),
        db.UniqueConstraint("guest_session_id", "product_id", "variant_id", name="uq_wishlist_items_guest_product_variant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    guest_session_id = db.Column(db.Integer, db.ForeignKey("guest_sessions.id"), nullable=True, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        product = self.product
        variant = self.variant
        return {
            "id": self.id,
            "user_id": self.user_id,
            "guest_session_id": self.guest_session_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": product.name if product else None,
            "brand": product.brand if product else None,
            "size": variant.size if variant else None,
            "color": variant.color if variant else None,
            "price_cents": variant.price_cents if variant else None,
            "created_at": to_utc_z(self.created_at),
        }
