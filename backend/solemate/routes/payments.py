# Overview: Flask API routes for payment gateway callbacks.

# backend/solemate/routes/payments.py
"""
Payment webhook.

SECURITY: The signature is checked against the raw body before the JSON is
even parsed. A bad signature is a 401 and nothing is written.
"""

import json

from flask import Blueprint, request, current_app

from ..responses import success_response, error_response, error_response_for, validation_error
from ..services import payment_service
from ..services.errors import CommerceError


SIGNATURE_HEADER = "X-Payment-Signature"

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/webhook")
def payment_webhook_route():
    raw_body = request.get_data(cache=True)
    signature = request.headers.get(SIGNATURE_HEADER)

    if not payment_service.verify_signature(raw_body, signature):
        current_app.logger.warning("Rejected payment webhook with invalid signature")
        return error_response("Invalid signature", 401)

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        return validation_error("Body must be valid JSON")
    if not isinstance(payload, dict):
        return validation_error("Body must be a JSON object")

    try:
        order = payment_service.handle_payment_callback(payload)
    except CommerceError as e:
        return error_response_for(e)
    except ValueError as e:
        return validation_error(str(e))
    except Exception:
        current_app.logger.exception("Payment webhook processing failed")
        return error_response("Internal server error", 500)

    return success_response(
        "Payment status recorded",
        {"order_number": order.order_number, "status": order.status, "payment_status": order.payment_status},
    )
