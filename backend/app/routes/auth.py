# Overview: Flask API routes for registration and OTP login; parses input and returns JSON responses.

# backend/app/routes/auth.py
"""
Authentication API routes

- Self-registration creates a pending member
- Login is a two-step one-time-code exchange (request, then verify)
- Failed verifications are throttled (429 once locked)
"""

from flask import Blueprint, request, g

from ..services import auth_service
from ..services import session_service
from ..validation import ServiceError
from ..decorators import require_auth
from ..responses import ok, from_error, internal_error


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _identifier(data: dict):
    return data.get("identifier") or data.get("email") or data.get("phone")


@auth_bp.post("/register")
def register_route():
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.register_user(data)
        return ok(user.to_dict(), 201, message="User registered successfully")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to register user")


@auth_bp.post("/otp/request")
def request_otp_route():
    """Always answers the same way for known and unknown identifiers."""
    try:
        data = request.get_json(silent=True) or {}
        auth_service.request_otp(_identifier(data))
        return ok(message="If the account exists, a login code has been sent.")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to issue login code")


@auth_bp.post("/otp/verify")
def verify_otp_route():
    try:
        data = request.get_json(silent=True) or {}
        user, token = auth_service.verify_otp(
            _identifier(data),
            data.get("code"),
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return ok({"user": user.to_dict(), "token": token}, message="Login successful")
    except ServiceError as e:
        return from_error(e)
    except Exception:
        return internal_error("Failed to verify login code")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        return ok(message="Logged out")
    except Exception:
        return internal_error("Failed to logout user")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok(g.current_user.to_dict())
