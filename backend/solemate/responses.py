# Overview: JSON response envelopes shared by every API route.

"""
Every endpoint answers with the same envelope:

    {"success": bool, "message": str, "data": ..., "toast": {"type", "message"}}

so the storefront can show a toast without knowing which endpoint it called.
"""

from flask import jsonify

from .services.errors import CommerceError


def _envelope(success: bool, message: str, data=None, toast_type: str = "success", toast_message: str | None = None) -> dict:
    body = {
        "success": success,
        "message": message,
        "toast": {"type": toast_type, "message": toast_message or message},
    }
    if data is not None:
        body["data"] = data
    return body


def success_response(message: str, data=None, status: int = 200, toast_message: str | None = None):
    return jsonify(_envelope(True, message, data, "success", toast_message)), status


def info_response(message: str, data=None, status: int = 200):
    return jsonify(_envelope(True, message, data, "info")), status


def error_response(message: str, status: int = 500, data=None, toast_type: str = "error"):
    return jsonify(_envelope(False, message, data, toast_type)), status


def validation_error(message: str):
    return error_response(message, 400)


def error_response_for(exc: CommerceError):
    """Translate a service-layer error into its HTTP envelope."""
    return error_response(
        exc.message,
        exc.status_code,
        data=exc.details or None,
        toast_type=exc.toast_type,
    )
