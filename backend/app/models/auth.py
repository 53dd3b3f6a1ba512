from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

USER_ROLES = ("user", "admin")
USER_STATUSES = ("pending", "verified", "suspend")


class User(db.Model):
    """
    Storefront member accounts.

    WHY: Every order, claim and check-in is attributable to a member, and
    reward_points is the live balance of the points ledger. It is only
    written by points_service (manual adjustments and reward credits).
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.UniqueConstraint("phone", name="uq_users_phone"),
        db.CheckConstraint("reward_points >= 0", name="reward_points_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False, index=True)

    birthday = db.Column(db.String(10), nullable=True)  # YYYY-MM-DD
    how_did_you_hear = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="user")
    status = db.Column(db.String(16), nullable=False, default="pending")

    # Live balance of the points ledger
    reward_points = db.Column(db.Integer, nullable=False, default=0)

    # One-time password login (bcrypt hashed)
    otp_hash = db.Column(db.String(255), nullable=True)
    otp_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "birthday": self.birthday,
            "how_did_you_hear": self.how_did_you_hear,
            "role": self.role,
            "status": self.status,
            "reward_points": self.reward_points,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Secure session token management.

    WHY: Stateless auth tokens with timeout and revocation support.
    Tokens are cryptographically secure random strings (32 bytes = 64 hex chars).

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout
    - 2-hour idle timeout
    - Revocable on logout
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }


class LoginEvent(db.Model):
    """
    Login attempts (OTP failures and successful logins).

    WHY: Drives OTP throttling and gives admins a login history.
    Append-only.
    """
    __tablename__ = "login_events"
    __table_args__ = (
        db.Index("ix_login_events_identifier_type_occurred", "identifier", "event_type", "occurred_at"),
        db.Index("ix_login_events_user_occurred", "user_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    identifier = db.Column(db.String(255), nullable=False)
    event_type = db.Column(db.String(32), nullable=False)  # OTP_FAILED, LOGIN_SUCCESS
    reason = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "identifier": self.identifier,
            "event_type": self.event_type,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
