# Overview: Flask API routes for guest order tracking by one-time code.

# backend/solemate/routes/order_tracking.py
from flask import Blueprint, request, current_app

from ..responses import success_response, error_response, error_response_for, validation_error
from ..services import tracking_service
from ..services.errors import CommerceError
from ..validation import ValidationError, require_fields


order_tracking_bp = Blueprint("order_tracking", __name__, url_prefix="/api/order-tracking")


@order_tracking_bp.post("/request")
def request_tracking_route():
    """Body: {order_number, contact} where contact is the email or phone used on the order."""
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "order_number", "contact")
        result = tracking_service.request_tracking(payload["order_number"], payload["contact"])
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)
    except Exception:
        current_app.logger.exception("Tracking code request failed")
        return error_response("Internal server error", 500)

    return success_response("Verification code sent", result)


@order_tracking_bp.post("/verify")
def verify_tracking_route():
    """Body: {order_number, contact, code}"""
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "order_number", "contact", "code")
        summary = tracking_service.verify_tracking(
            payload["order_number"], payload["contact"], str(payload["code"])
        )
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Order verified", summary)
