from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

ADJUSTMENT_TYPES = ("add", "subtract")


class PointsAdjustment(db.Model):
    """
    Append-only audit trail of reward point balance changes.

    Each row captures the balance immediately before and after the change
    it records, written in the same DB transaction as User.reward_points.

    BALANCE RULE:
    - add:      new_balance == previous_balance + points
    - subtract: new_balance == max(0, previous_balance - points)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "points_adjustments"
    __table_args__ = (
        db.CheckConstraint("points > 0", name="points_positive"),
        db.CheckConstraint("new_balance >= 0", name="new_balance_non_negative"),
        db.Index("ix_points_adjustments_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    adjusted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    adjustment_type = db.Column(db.String(16), nullable=False, index=True)  # add, subtract
    points = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=False)
    custom_reason = db.Column(db.String(255), nullable=False, default="")
    notes = db.Column(db.Text, nullable=False, default="")

    reward_task_id = db.Column(db.Integer, db.ForeignKey("reward_tasks.id", ondelete="SET NULL"), nullable=True)
    reward_claim_id = db.Column(db.Integer, db.ForeignKey("reward_claims.id"), nullable=True)

    previous_balance = db.Column(db.Integer, nullable=False)
    new_balance = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("points_adjustments", lazy=True))
    adjusted_by = db.relationship("User", foreign_keys=[adjusted_by_user_id])
    reward_task = db.relationship("RewardTask")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user is not None else None,
            "adjusted_by": self.adjusted_by.to_summary() if self.adjusted_by is not None else None,
            "adjustment_type": self.adjustment_type,
            "points": self.points,
            "reason": self.reason,
            "custom_reason": self.custom_reason,
            "notes": self.notes,
            "reward_task": (
                {
                    "id": self.reward_task.id,
                    "task_id": self.reward_task.task_id,
                    "title": self.reward_task.title,
                    "reward": self.reward_task.reward,
                }
                if self.reward_task is not None
                else None
            ),
            "reward_claim_id": self.reward_claim_id,
            "previous_balance": self.previous_balance,
            "new_balance": self.new_balance,
            "created_at": to_utc_z(self.created_at),
        }
