# Overview: Request authentication decorators for API routes.

from functools import wraps
from flask import request, g

from .responses import fail
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a valid session token.

    Sets g.current_user and g.session_context.

    Returns 401 when no Bearer token is sent and 403 when the token is
    unknown, expired, idle, revoked or belongs to a suspended account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return fail("Access denied. No token provided.", 401)

        context = session_service.validate_session(token)
        if not context:
            return fail("Invalid or expired token", 403)

        g.current_user = context.user
        g.session_context = context
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to be an admin. Apply after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, 'current_user'):
            return fail("Access denied. No token provided.", 401)
        if not g.current_user.is_admin:
            return fail("Admin access required", 403)
        return f(*args, **kwargs)
    return decorated_function
