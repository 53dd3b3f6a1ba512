"""
OTP Throttling Service

Limits guessing of the 6-digit login code. Failed verifications are
recorded as OTP_FAILED login events; once OTP_MAX_FAILED_ATTEMPTS of
them land within OTP_LOCKOUT_MINUTES (and after the identifier's last
successful login), verification is refused until the newest failure is
OTP_LOCKOUT_MINUTES old.
"""

from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import LoginEvent
from ..validation import ServiceError
from app.time_utils import utcnow

EVENT_OTP_FAILED = "OTP_FAILED"
EVENT_LOGIN_SUCCESS = "LOGIN_SUCCESS"


class OtpThrottledError(ServiceError):
    """Too many failed OTP attempts for this identifier."""

    status_code = 429


def _lockout_window() -> timedelta:
    return timedelta(minutes=current_app.config["OTP_LOCKOUT_MINUTES"])


def _last_success_at(identifier: str):
    return db.session.query(func.max(LoginEvent.occurred_at)).filter(
        LoginEvent.identifier == identifier,
        LoginEvent.event_type == EVENT_LOGIN_SUCCESS,
    ).scalar()


def _recent_failures_query(identifier: str):
    cutoff = utcnow() - _lockout_window()
    last_success = _last_success_at(identifier)
    if last_success is not None and last_success > cutoff:
        cutoff = last_success

    return db.session.query(LoginEvent).filter(
        LoginEvent.identifier == identifier,
        LoginEvent.event_type == EVENT_OTP_FAILED,
        LoginEvent.occurred_at >= cutoff,
    )


def get_recent_failed_attempts(identifier: str) -> int:
    return _recent_failures_query(identifier).count()


def is_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    failures = _recent_failures_query(identifier)
    if failures.count() < current_app.config["OTP_MAX_FAILED_ATTEMPTS"]:
        return False, None

    most_recent = failures.order_by(LoginEvent.occurred_at.desc()).first()
    lockout_end = most_recent.occurred_at + _lockout_window()
    now = utcnow()
    if now < lockout_end:
        return True, int((lockout_end - now).total_seconds())
    return False, None


def ensure_not_locked(identifier: str) -> None:
    locked, seconds_remaining = is_locked(identifier)
    if locked:
        raise OtpThrottledError(
            "Too many failed attempts. Please try again later.",
            details={"seconds_until_unlock": seconds_remaining},
        )


def record_failed_attempt(
    identifier: str,
    user_id: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid code",
) -> int:
    """Record a failed verification; returns the recent failure count."""
    db.session.add(LoginEvent(
        user_id=user_id,
        identifier=identifier,
        event_type=EVENT_OTP_FAILED,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    ))
    db.session.commit()
    return get_recent_failed_attempts(identifier)


def record_successful_login(
    user_id: int,
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Added to the caller's transaction; the caller commits."""
    db.session.add(LoginEvent(
        user_id=user_id,
        identifier=identifier,
        event_type=EVENT_LOGIN_SUCCESS,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    ))
