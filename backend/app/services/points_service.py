"""
Points Service - reward point ledger

Ledger invariants (authoritative):
- User.reward_points is the live balance and never goes below zero.
- Every balance change appends exactly one PointsAdjustment recording
  previous_balance and new_balance, in the same DB transaction as the
  balance write. Neither write can land without the other.
- add:      new = previous + points
- subtract: new = max(0, previous - points)   (floors at zero)
- Adjustments are append-only.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func, or_
from sqlalchemy.orm import aliased

from ..extensions import db
from ..models import PointsAdjustment, RewardTask, User
from ..models.points import ADJUSTMENT_TYPES
from ..validation import NotFoundError, ValidationError, coerce_int, coerce_str, pagination_meta
from app.time_utils import end_of_day, parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_in_transaction


def compute_new_balance(previous_balance: int, adjustment_type: str, points: int) -> int:
    if adjustment_type == "add":
        return previous_balance + points
    return max(0, previous_balance - points)


def validate_adjustment(adjustment_type, points, reason) -> tuple[str, int, str]:
    reason = coerce_str(reason, "reason")
    if not adjustment_type or points is None or not reason:
        raise ValidationError("Adjustment type, points, and reason are required")

    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError('Invalid adjustment type. Must be "add" or "subtract"')

    points = coerce_int(points, "points")
    if points <= 0:
        raise ValidationError("Points must be greater than 0")

    return adjustment_type, points, reason[:255]


def apply_adjustment(
    *,
    user: User,
    adjustment_type: str,
    points: int,
    reason: str,
    adjusted_by_user_id: int,
    reward_task_id: int | None = None,
    reward_claim_id: int | None = None,
    custom_reason: str | None = None,
    notes: str | None = None,
) -> PointsAdjustment:
    """
    Mutate the balance and append its audit row inside the caller's
    transaction. The caller owns the commit and must have locked user.
    """
    previous_balance = user.reward_points or 0
    new_balance = compute_new_balance(previous_balance, adjustment_type, points)

    user.reward_points = new_balance

    adjustment = PointsAdjustment(
        user_id=user.id,
        adjusted_by_user_id=adjusted_by_user_id,
        adjustment_type=adjustment_type,
        points=points,
        reason=reason,
        custom_reason=custom_reason or "",
        notes=notes or "",
        reward_task_id=reward_task_id,
        reward_claim_id=reward_claim_id,
        previous_balance=previous_balance,
        new_balance=new_balance,
        created_at=utcnow(),
    )
    db.session.add(adjustment)
    db.session.flush()
    return adjustment


def lock_user(user_id: int) -> User:
    user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def adjust_user_points(
    user_id: int,
    adjustment_type: str,
    points,
    reason: str,
    admin_id: int,
    reward_task_id: int | None = None,
    custom_reason: str | None = None,
    notes: str | None = None,
) -> dict:
    """Admin-initiated balance change. Returns the adjustment and both balances."""
    adjustment_type, points, reason = validate_adjustment(adjustment_type, points, reason)
    custom_reason = coerce_str(custom_reason, "custom_reason")[:255]
    notes = coerce_str(notes, "notes")
    if reward_task_id is not None:
        reward_task_id = coerce_int(reward_task_id, "reward_task_id")

    def _op() -> dict:
        user = lock_user(user_id)

        if reward_task_id is not None and db.session.get(RewardTask, reward_task_id) is None:
            raise NotFoundError("Reward task not found")

        adjustment = apply_adjustment(
            user=user,
            adjustment_type=adjustment_type,
            points=points,
            reason=reason,
            adjusted_by_user_id=admin_id,
            reward_task_id=reward_task_id,
            custom_reason=custom_reason,
            notes=notes,
        )
        return {
            "adjustment": adjustment,
            "user": user,
            "previous_balance": adjustment.previous_balance,
            "new_balance": adjustment.new_balance,
        }

    return run_in_transaction(_op)


def get_user_points_history(user_id: int, page: int = 1, limit: int = 20) -> dict:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    query = db.session.query(PointsAdjustment).filter(PointsAdjustment.user_id == user_id)
    total = query.count()
    adjustments = (
        query.order_by(PointsAdjustment.created_at.desc(), PointsAdjustment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "user": user,
        "adjustments": adjustments,
        "pagination": pagination_meta(page, limit, total),
    }


def _parse_date(value: str | None, field: str) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def get_all_points_adjustments(
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    adjustment_type: str | None = None,
    user_id: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict:
    """
    Filtered, paginated ledger. The search term is part of the SQL filter
    (user name/email, reason, task title), so every page is a full page
    of matches and totals count matches only.
    """
    query = db.session.query(PointsAdjustment)

    if adjustment_type and adjustment_type != "all":
        query = query.filter(PointsAdjustment.adjustment_type == adjustment_type)

    if user_id is not None:
        query = query.filter(PointsAdjustment.user_id == user_id)

    start = _parse_date(start_date, "startDate")
    end = _parse_date(end_date, "endDate")
    if start is not None:
        query = query.filter(PointsAdjustment.created_at >= start)
    if end is not None:
        query = query.filter(PointsAdjustment.created_at <= end_of_day(end))

    if search and search.strip():
        pattern = f"%{search.strip()}%"
        member = aliased(User)
        query = (
            query.join(member, PointsAdjustment.user_id == member.id)
            .outerjoin(RewardTask, PointsAdjustment.reward_task_id == RewardTask.id)
            .filter(or_(
                member.full_name.ilike(pattern),
                member.email.ilike(pattern),
                PointsAdjustment.reason.ilike(pattern),
                RewardTask.title.ilike(pattern),
            ))
        )

    total = query.count()
    adjustments = (
        query.order_by(PointsAdjustment.created_at.desc(), PointsAdjustment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"adjustments": adjustments, "pagination": pagination_meta(page, limit, total)}


def get_my_points(user_id: int) -> dict:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    recent = (
        db.session.query(PointsAdjustment)
        .filter(PointsAdjustment.user_id == user_id)
        .order_by(PointsAdjustment.created_at.desc(), PointsAdjustment.id.desc())
        .limit(10)
        .all()
    )
    return {"current_balance": user.reward_points or 0, "recent_adjustments": recent}


def get_points_stats() -> dict:
    total_adjustments, total_added, total_subtracted = db.session.query(
        func.count(PointsAdjustment.id),
        func.coalesce(func.sum(case((PointsAdjustment.adjustment_type == "add", PointsAdjustment.points), else_=0)), 0),
        func.coalesce(func.sum(case((PointsAdjustment.adjustment_type == "subtract", PointsAdjustment.points), else_=0)), 0),
    ).one()

    users_with_points = db.session.query(func.count(User.id)).filter(User.reward_points > 0).scalar()
    total_in_circulation = db.session.query(func.coalesce(func.sum(User.reward_points), 0)).scalar()

    return {
        "overview": {
            "total_adjustments": int(total_adjustments or 0),
            "total_points_added": int(total_added or 0),
            "total_points_subtracted": int(total_subtracted or 0),
        },
        "users_with_points": int(users_with_points or 0),
        "total_points_in_circulation": int(total_in_circulation or 0),
    }
