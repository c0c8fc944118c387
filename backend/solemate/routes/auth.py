# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/solemate/routes/auth.py
"""
Authentication API routes

Every successful signup/login also migrates the caller's guest session
(X-Session-Id header) into the account. The response carries the bearer
token and the migration counts.

Password reset answers the same way for registered and unknown emails.
"""

from flask import Blueprint, request, g, current_app

from ..decorators import guest_token_from_request, require_auth
from ..responses import success_response, info_response, error_response, error_response_for, validation_error
from ..services import auth_service, auth_token_service, otp_service
from ..services.auth_service import PasswordValidationError
from ..services.errors import CommerceError
from ..validation import ValidationError, ConflictError, require_fields


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _client_info() -> dict:
    return {
        "user_agent": request.headers.get("User-Agent"),
        "ip_address": request.remote_addr,
    }


@auth_bp.post("/signup")
def signup_route():
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "email", "password")
        result = auth_service.signup(
            payload["email"],
            payload["password"],
            full_name=payload.get("full_name"),
            guest_token=guest_token_from_request(),
            **_client_info(),
        )
    except (ValidationError, PasswordValidationError) as e:
        return validation_error(str(e))
    except ConflictError as e:
        return error_response(str(e), 409)
    except CommerceError as e:
        return error_response_for(e)
    except Exception:
        current_app.logger.exception("Signup failed")
        return error_response("Internal server error", 500)

    return success_response("Account created", result.to_dict(), status=201)


@auth_bp.post("/login")
def login_route():
    payload = request.get_json(silent=True) or {}
    email = payload.get("email")
    password = payload.get("password")

    if not all([email, password]):
        return validation_error("email and password required")

    try:
        result = auth_service.login(email, password, guest_token=guest_token_from_request(), **_client_info())
    except CommerceError as e:
        return error_response_for(e)
    except Exception:
        current_app.logger.exception("Login failed")
        return error_response("Internal server error", 500)

    if result is None:
        return error_response("Invalid credentials", 401)

    return success_response("Logged in", result.to_dict())


@auth_bp.post("/otp/request")
def request_otp_route():
    """Body: {phone, purpose: LOGIN | SIGNUP}"""
    payload = request.get_json(silent=True) or {}
    purpose = str(payload.get("purpose") or otp_service.PURPOSE_LOGIN).upper()

    try:
        require_fields(payload, "phone")
        result = auth_service.request_phone_otp(purpose, payload["phone"])
    except ValidationError as e:
        return validation_error(str(e))
    except ConflictError as e:
        return error_response(str(e), 409)
    except CommerceError as e:
        return error_response_for(e)
    except ValueError as e:
        return validation_error(str(e))

    return success_response("Verification code sent", result)


@auth_bp.post("/otp/verify-login")
def verify_login_otp_route():
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "phone", "code")
        result = auth_service.verify_phone_login(
            payload["phone"],
            str(payload["code"]),
            guest_token=guest_token_from_request(),
            **_client_info(),
        )
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Logged in", result.to_dict())


@auth_bp.post("/otp/verify-signup")
def verify_signup_otp_route():
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "phone", "code")
        result = auth_service.verify_phone_signup(
            payload["phone"],
            str(payload["code"]),
            guest_token=guest_token_from_request(),
            full_name=payload.get("full_name"),
            **_client_info(),
        )
    except ValidationError as e:
        return validation_error(str(e))
    except ConflictError as e:
        return error_response(str(e), 409)
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Account created", result.to_dict(), status=201)


@auth_bp.post("/logout")
@require_auth
def logout_route():
    auth_token_service.revoke_token(g.raw_auth_token, reason="User logout")
    return success_response("Logged out")


@auth_bp.get("/me")
@require_auth
def me_route():
    return success_response("Current user", g.current_user.to_dict())


@auth_bp.post("/email/verification/request")
@require_auth
def request_email_verification_route():
    try:
        result = auth_service.request_email_verification(g.current_user)
    except ValidationError as e:
        return validation_error(str(e))
    except ConflictError as e:
        return info_response(str(e))
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Verification code sent", result)


@auth_bp.post("/email/verify")
@require_auth
def verify_email_route():
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "code")
        user = auth_service.verify_email(g.current_user, str(payload["code"]))
    except ValidationError as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Email verified", user.to_dict())


@auth_bp.post("/password/forgot")
def forgot_password_route():
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "email")
        auth_service.forgot_password(payload["email"])
    except ValidationError as e:
        return validation_error(str(e))

    return success_response("If an account exists for this email, a reset code has been sent")


@auth_bp.post("/password/reset")
def reset_password_route():
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "email", "code", "password")
        auth_service.reset_password(payload["email"], str(payload["code"]), payload["password"])
    except (ValidationError, PasswordValidationError) as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Password reset, please log in again")


@auth_bp.post("/password/change")
@require_auth
def change_password_route():
    payload = request.get_json(silent=True) or {}

    try:
        require_fields(payload, "current_password", "new_password")
        revoked = auth_service.change_password(
            g.current_user,
            payload["current_password"],
            payload["new_password"],
            keep_token_id=g.auth_token.id,
        )
    except (ValidationError, PasswordValidationError) as e:
        return validation_error(str(e))
    except CommerceError as e:
        return error_response_for(e)

    return success_response("Password changed", {"sessions_revoked": revoked})
