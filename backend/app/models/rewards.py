from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

CLAIM_STATUSES = ("pending", "approved", "rejected")
PROOF_TYPES = ("text", "image", "audio", "video")

# Synthetic task id of the one-time bonus claim
COMPLETION_BONUS_TASK_ID = "completion-bonus"


class RewardTask(db.Model):
    """
    Admin-managed reward task definitions.

    This table is the only task catalog: claim submission and bonus
    eligibility both read it (see reward_service.load_task_catalog).
    is_required marks the tasks that count toward the completion bonus.
    """
    __tablename__ = "reward_tasks"
    __table_args__ = (
        db.UniqueConstraint("task_id", name="uq_reward_tasks_task_id"),
        db.CheckConstraint("reward >= 0", name="reward_non_negative"),
        db.Index("ix_reward_tasks_visible_order", "is_visible", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    reward = db.Column(db.Integer, nullable=False)
    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "title": self.title,
            "description": self.description or "",
            "reward": self.reward,
            "is_visible": self.is_visible,
            "is_required": self.is_required,
            "sort_order": self.sort_order,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RewardClaim(db.Model):
    """
    A member's proof that a reward task was completed, pending admin review.

    UNIQUENESS: one claim per (user, task_id). The constraint is the guard;
    the service pre-check only produces a friendlier error in the common case.
    """
    __tablename__ = "reward_claims"
    __table_args__ = (
        db.UniqueConstraint("user_id", "task_id", name="uq_reward_claims_user_task"),
        db.CheckConstraint("amount >= 0", name="amount_non_negative"),
        db.Index("ix_reward_claims_user_status", "user_id", "status"),
        db.Index("ix_reward_claims_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    task_id = db.Column(db.String(64), nullable=False)
    task_title = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending")

    proof_type = db.Column(db.String(16), nullable=False)
    proof_text = db.Column(db.Text, nullable=False, default="")
    proof_image_url = db.Column(db.String(1024), nullable=True)
    proof_audio_url = db.Column(db.String(1024), nullable=True)
    proof_video_url = db.Column(db.String(1024), nullable=True)

    admin_notes = db.Column(db.Text, nullable=False, default="")
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("reward_claims", lazy=True))
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user is not None else None,
            "task_id": self.task_id,
            "task_title": self.task_title,
            "amount": self.amount,
            "status": self.status,
            "proof_type": self.proof_type,
            "proof_text": self.proof_text,
            "proof_image_url": self.proof_image_url,
            "proof_audio_url": self.proof_audio_url,
            "proof_video_url": self.proof_video_url,
            "admin_notes": self.admin_notes,
            "approved_by": self.approved_by.to_summary() if self.approved_by is not None else None,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
