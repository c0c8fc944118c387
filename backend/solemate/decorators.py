# Overview: Request decorators for API routes (bearer auth, admin gate, cart owner resolution).

from functools import wraps
from flask import request, g, current_app

from .responses import error_response
from .services import auth_token_service, session_service
from .services.errors import StorageError
from .services.owner import GuestOwner, UserOwner

SESSION_HEADER = "X-Session-Id"


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _load_auth_context() -> bool:
    """Populate g.current_user / g.auth_token from a valid bearer token."""
    token = _bearer_token()
    if not token:
        return False
    context = auth_token_service.validate_token(token)
    if context is None:
        return False
    g.current_user = context.user
    g.auth_token = context.token
    g.raw_auth_token = token
    return True


def guest_token_from_request() -> str | None:
    """Guest session token from the X-Session-Id header (or JSON body fallback)."""
    token = request.headers.get(SESSION_HEADER)
    if not token:
        payload = request.get_json(silent=True) or {}
        token = payload.get("session_id") if isinstance(payload, dict) else None
    return token.strip() if isinstance(token, str) and token.strip() else None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets:
    - g.current_user: the authenticated User
    - g.auth_token: the AuthToken row

    Returns 401 if the header is missing, the token is invalid or expired,
    or the account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if _bearer_token() is None:
            return error_response("Authentication required", 401)
        if not _load_auth_context():
            return error_response("Invalid or expired token", 401)
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Like require_auth, but anonymous callers pass through with no g.current_user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None
        if _bearer_token() is not None and not _load_auth_context():
            return error_response("Invalid or expired token", 401)
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require an authenticated admin. Apply after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return error_response("Authentication required", 401)
        if not user.is_admin:
            return error_response("Admin access required", 403)
        return f(*args, **kwargs)

    return decorated_function


def with_owner(create_session: bool = True):
    """
    Resolve the cart/wishlist owner for the request into g.owner.

    Authenticated callers own their rows as users. Anonymous callers are
    identified by the X-Session-Id header; when it is missing or no longer
    valid and create_session is set, a fresh guest session is issued and
    its token returned in the X-Session-Id response header.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            g.current_user = None
            g.new_session_token = None

            if _bearer_token() is not None:
                if not _load_auth_context():
                    return error_response("Invalid or expired token", 401)
                g.owner = UserOwner(g.current_user.id)
                return f(*args, **kwargs)

            token = guest_token_from_request()
            if create_session:
                try:
                    session, token, created = session_service.get_or_create_session(token)
                except StorageError as e:
                    current_app.logger.error("Guest session creation failed: %s", e)
                    return error_response("Could not start a session", 500)
            else:
                session, created = session_service.resolve_session(token), False
                if session is None:
                    return error_response("Invalid or expired session", 401)

            g.owner = GuestOwner(session.id)
            if created:
                g.new_session_token = token

            response = current_app.make_response(f(*args, **kwargs))
            if created:
                response.headers[SESSION_HEADER] = token
            return response

        return decorated_function
    return decorator
