# Overview: Service-layer operations for payment gateway callbacks; encapsulates business logic and database work.

"""
Payment Callback Service

WHY: Online payments are confirmed asynchronously by the gateway. The
webhook is the only way an order's payment status moves to SUCCESS for
ONLINE orders.

SECURITY:
- Body is signed with HMAC-SHA256 (hex) using PAYMENT_WEBHOOK_SECRET
- Signature compared in constant time against the raw request body
- Unsigned or tampered callbacks never touch the database

IDEMPOTENCY:
- Gateways retry; a callback repeating the current payment status is a no-op.
"""

from __future__ import annotations

import hashlib
import hmac

from flask import current_app

from ..models import Order
from . import order_service
from .errors import NotFound


GATEWAY_STATUS_MAP = {
    "captured": order_service.PAYMENT_SUCCESS,
    "success": order_service.PAYMENT_SUCCESS,
    "failed": order_service.PAYMENT_FAILED,
}


def compute_signature(raw_body: bytes, secret: str | None = None) -> str:
    secret = secret if secret is not None else current_app.config.get("PAYMENT_WEBHOOK_SECRET", "")
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None) -> bool:
    """True if `signature` is the HMAC of the raw body. Never raises."""
    secret = current_app.config.get("PAYMENT_WEBHOOK_SECRET")
    if not secret or not signature or not isinstance(signature, str):
        return False
    expected = compute_signature(raw_body or b"", secret)
    return hmac.compare_digest(expected, signature.strip().lower())


def handle_payment_callback(payload: dict) -> Order:
    """
    Apply a verified gateway callback.

    Payload: {order_number, status, payment_id}

    Raises:
        ValueError: missing fields or unknown gateway status
        NotFound: unknown order number
        InvalidTransition: status change not allowed (e.g. SUCCESS -> FAILED)
        OutOfStock: a retried payment after the order's stock was sold
    """
    order_number = (payload.get("order_number") or "").strip()
    gateway_status = (payload.get("status") or "").strip().lower()
    payment_id = payload.get("payment_id")

    if not order_number:
        raise ValueError("order_number is required")
    if gateway_status not in GATEWAY_STATUS_MAP:
        raise ValueError(f"Unsupported payment status: {gateway_status or None}")

    order = order_service.find_by_order_number(order_number)
    if order is None:
        raise NotFound("Order not found", details={"order_number": order_number})

    previous = order.payment_status
    order = order_service.update_payment_status(
        order.id,
        GATEWAY_STATUS_MAP[gateway_status],
        gateway_payment_id=str(payment_id) if payment_id else None,
    )

    if previous == order.payment_status:
        current_app.logger.info("Duplicate payment callback for %s ignored", order_number)
    else:
        current_app.logger.info(
            "Payment for %s moved %s -> %s", order_number, previous, order.payment_status
        )
    return order
