# Overview: Flask API routes for guest sessions; parses input and returns JSON responses.

# backend/solemate/routes/session.py
"""
Guest session routes.

The plaintext token is returned once on creation; clients send it back in
the X-Session-Id header on cart and wishlist calls.
"""

from flask import Blueprint, g, current_app

from ..decorators import guest_token_from_request, require_auth
from ..responses import success_response, info_response, error_response, error_response_for
from ..services import migration_service, session_service
from ..services.errors import CommerceError
from solemate.time_utils import to_utc_z


session_bp = Blueprint("session", __name__, url_prefix="/api/session")


@session_bp.post("/create")
def create_session_route():
    try:
        session, token = session_service.create_session()
    except CommerceError as e:
        return error_response_for(e)

    return success_response(
        "Session created",
        {"session_id": token, "expires_at": to_utc_z(session.expires_at)},
        status=201,
    )


@session_bp.get("/validate")
def validate_session_route():
    token = guest_token_from_request()
    if not token:
        return error_response("Session ID is required", 400)

    if not session_service.validate_session(token):
        return error_response("Invalid or expired session", 401)

    return success_response("Session is valid", {"valid": True})


@session_bp.post("/extend")
def extend_session_route():
    token = guest_token_from_request()
    if not token:
        return error_response("Session ID is required", 400)

    session = session_service.extend_session(token)
    if session is None:
        return error_response("Invalid or expired session", 401)

    return success_response("Session extended", {"expires_at": to_utc_z(session.expires_at)})


@session_bp.post("/migrate")
@require_auth
def migrate_session_route():
    """
    Migrate a guest session to the logged-in user.

    Login and signup already migrate; this covers clients that log in first
    and attach the guest token afterwards. Repeated calls are no-ops.
    """
    token = guest_token_from_request()
    if not token:
        return error_response("Session ID is required", 400)

    try:
        result = migration_service.migrate(token, g.current_user.id)
    except CommerceError as e:
        return error_response_for(e)
    except Exception:
        current_app.logger.exception("Session migration failed")
        return error_response("Internal server error", 500)

    if not result.migrated:
        return info_response("Nothing to migrate", result.to_dict())
    return success_response("Session migrated successfully", result.to_dict())
