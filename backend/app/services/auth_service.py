# Overview: Member registration and one-time-code login.

"""
Authentication Service

Members sign up with email + phone and log in with a 6-digit code sent
to their phone (or email when no phone is on file).

SECURITY NOTES:
- Codes are hashed with bcrypt before storage and expire after
  OTP_TTL_MINUTES; a successful verification clears them (single use)
- Failed verifications are throttled (see otp_throttle_service.py)
- Session tokens managed separately (see session_service.py)
"""

import re
import secrets
from datetime import date, timedelta

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..models.auth import USER_STATUSES
from ..validation import AuthError, ConflictError, NotFoundError, ValidationError, coerce_str
from app.time_utils import utcnow
from . import notification_service
from .concurrency import run_in_transaction
from .otp_throttle_service import ensure_not_locked, record_failed_attempt, record_successful_login
from .session_service import create_session, revoke_all_user_sessions

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class OtpError(AuthError):
    """Code missing, wrong or expired."""


class AccountSuspendedError(AuthError):
    status_code = 403


def normalize_email(email: str | None) -> str:
    return coerce_str(email, "email").lower()


def normalize_phone(phone: str | None) -> str:
    return coerce_str(phone, "phone", allow_int=True)


def generate_otp() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def hash_otp(code: str) -> str:
    """
    bcrypt hash of a login code.

    Codes only have a million values, so a fast hash would be trivial to
    reverse from a leaked row.
    """
    hashed = bcrypt.hashpw(code.encode('utf-8'), bcrypt.gensalt(rounds=10))
    return hashed.decode('utf-8')


def verify_otp_hash(code: str, otp_hash: str) -> bool:
    try:
        return bcrypt.checkpw(code.encode('utf-8'), otp_hash.encode('utf-8'))
    except ValueError:
        return False


def _parse_birthday(payload: dict) -> str | None:
    raw = payload.get("birthday")
    if isinstance(raw, dict):
        day, month, year = raw.get("day"), raw.get("month"), raw.get("year")
    elif raw:
        try:
            return date.fromisoformat(str(raw).strip()).isoformat()
        except ValueError:
            raise ValidationError("birthday must be YYYY-MM-DD")
    else:
        day, month, year = payload.get("day"), payload.get("month"), payload.get("year")

    if day is None and month is None and year is None:
        return None
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except (TypeError, ValueError):
        raise ValidationError("birthday is not a valid date")


def register_user(payload: dict) -> User:
    """
    Create a pending member account.

    Required: email, full_name, phone and agree_to_terms=true.
    Email and phone are each unique across accounts.
    """
    payload = payload or {}
    email = normalize_email(payload.get("email"))
    full_name = coerce_str(payload.get("full_name"), "full_name")
    phone = normalize_phone(payload.get("phone"))

    if not email or not full_name or not phone or payload.get("agree_to_terms") is not True:
        raise ValidationError("All required fields must be filled and terms agreed.")
    if not EMAIL_RE.match(email):
        raise ValidationError("email is not a valid address")

    user = User(
        email=email,
        full_name=full_name,
        phone=phone,
        birthday=_parse_birthday(payload),
        how_did_you_hear=coerce_str(payload.get("how_did_you_hear"), "how_did_you_hear") or None,
        role="user",
        status="pending",
        reward_points=0,
    )
    return _insert_user(user)


def _insert_user(user: User) -> User:
    def _op() -> User:
        existing = db.session.query(User).filter(
            db.or_(User.email == user.email, User.phone == user.phone)
        ).first()
        if existing is not None:
            field = "email" if existing.email == user.email else "phone"
            raise ConflictError(f"User already exists with this {field}.", details={"field": field})
        db.session.add(user)
        db.session.flush()
        return user

    try:
        return run_in_transaction(_op)
    except IntegrityError:
        raise ConflictError("User already exists with this email or phone.")


def create_admin(email: str, full_name: str, phone: str) -> User:
    """Create a verified admin account (used by the CLI)."""
    email = normalize_email(email)
    if not EMAIL_RE.match(email):
        raise ValidationError("email is not a valid address")
    return _insert_user(User(
        email=email,
        full_name=full_name.strip(),
        phone=normalize_phone(phone),
        role="admin",
        status="verified",
        reward_points=0,
    ))


def find_user(identifier: str | None) -> User | None:
    """Look a member up by email (contains @) or phone."""
    identifier = coerce_str(identifier, "identifier", allow_int=True)
    if not identifier:
        return None
    if "@" in identifier:
        return db.session.query(User).filter_by(email=normalize_email(identifier)).first()
    return db.session.query(User).filter_by(phone=identifier).first()


def request_otp(identifier: str | None) -> None:
    """
    Issue a fresh login code, replacing any previous one.

    Unknown identifiers are accepted silently so the endpoint does not
    reveal which emails and phones are registered.
    """
    identifier = coerce_str(identifier, "identifier", allow_int=True)
    if not identifier:
        raise ValidationError("email or phone is required")

    user = find_user(identifier)
    if user is None:
        current_app.logger.info("otp requested for unknown identifier")
        return
    if user.status == "suspend":
        raise AccountSuspendedError("Account suspended", details={"status": user.status})

    ttl = current_app.config["OTP_TTL_MINUTES"]
    code = generate_otp()

    def _op() -> User:
        target = db.session.get(User, user.id)
        target.otp_hash = hash_otp(code)
        target.otp_expires_at = utcnow() + timedelta(minutes=ttl)
        return target

    target = run_in_transaction(_op)
    notification_service.send_otp(target, code, ttl)


def verify_otp(
    identifier: str | None,
    code: str | None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[User, str]:
    """
    Exchange a valid code for a session token. Returns (user, token).

    The code is cleared on success so it cannot be replayed.
    """
    identifier = coerce_str(identifier, "identifier", allow_int=True)
    code = coerce_str(code, "code", allow_int=True)
    if not identifier or not code:
        raise ValidationError("identifier and code are required")

    ensure_not_locked(identifier)

    user = find_user(identifier)
    now = utcnow()
    if (
        user is None
        or user.otp_hash is None
        or user.otp_expires_at is None
        or user.otp_expires_at < now
        or not verify_otp_hash(code, user.otp_hash)
    ):
        expired = user is not None and user.otp_expires_at is not None and user.otp_expires_at < now
        reason = "Expired code" if expired else "Invalid code"
        record_failed_attempt(
            identifier,
            user_id=user.id if user is not None else None,
            ip_address=ip_address,
            user_agent=user_agent,
            reason=reason,
        )
        raise OtpError("Invalid or expired code")

    if user.status == "suspend":
        raise AccountSuspendedError("Account suspended", details={"status": user.status})

    user_id = user.id

    def _op() -> tuple[User, str]:
        target = db.session.get(User, user_id)
        target.otp_hash = None
        target.otp_expires_at = None
        target.last_login_at = now
        if target.status == "pending":
            target.status = "verified"
        record_successful_login(user_id, identifier, ip_address=ip_address, user_agent=user_agent)
        _, token = create_session(user_id, user_agent=user_agent, ip_address=ip_address, commit=False)
        return target, token

    return run_in_transaction(_op)


def set_user_status(identifier: str | None, status: str) -> User:
    """
    Change an account's status (pending/verified/suspend).

    Suspending also revokes every live session, so the member is signed
    out on all devices right away.
    """
    if status not in USER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")

    user = find_user(identifier)
    if user is None:
        raise NotFoundError("User not found")
    user_id = user.id

    def _op() -> User:
        target = db.session.get(User, user_id)
        target.status = status
        return target

    target = run_in_transaction(_op)
    if status == "suspend":
        revoked = revoke_all_user_sessions(user_id, reason="User account suspended")
        current_app.logger.info("suspended user %s, revoked %s sessions", user_id, revoked)
    return target
