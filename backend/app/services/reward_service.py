"""
Reward Service - task claims, admin review and the completion bonus

Invariants:
- At most one claim per (user, task_id). The unique constraint is the
  guard; the pre-check only gives the common case a cheaper path.
- A claim's amount reaches the ledger exactly once: on its transition
  into approved, in the same transaction as the status change.
- Approved claims stay approved. Rejecting one would strand its credit,
  so it is refused; re-approving only updates the notes.
- The completion bonus is granted once per user, when every required
  task has an approved claim. Its (user, "completion-bonus") row is
  unique, so a second grant cannot be stored.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import PointsAdjustment, RewardClaim, RewardTask, User
from ..models.rewards import CLAIM_STATUSES, COMPLETION_BONUS_TASK_ID, PROOF_TYPES
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_int, coerce_str, pagination_meta
from app.time_utils import utcnow
from . import notification_service
from .concurrency import lock_for_update, run_in_transaction
from .points_service import apply_adjustment, lock_user
from .storage_service import classify_upload, get_blob_store

COMPLETION_BONUS_TITLE = "All Tasks Completion Bonus"

DEFAULT_TASKS = (
    ("join-groove", "Join Groove Group"),
    ("follow-ig", "Follow Us On IG"),
    ("save-whatsapp", "Save WhatsApp Contact"),
    ("google-review", "Google Review"),
    ("tag-selfie", "Tag Us Selfie Wall Photo"),
    ("first-experience", "First Experience Share"),
    ("subscribe-yt", "Subscribe YT Channel"),
    ("share-journey", "Share Your Journey"),
    ("bring-friend", "Bring a Friend"),
    ("special-reward", "Special Reward"),
)
DEFAULT_TASK_REWARD = 1


class UnknownTaskError(ValidationError):
    """Claim references a task id that is not in the catalog or is hidden."""


class AlreadyClaimedError(ConflictError):
    """The user already has a claim for this task."""

    status_code = 400


@dataclass(frozen=True)
class TaskInfo:
    id: int
    task_id: str
    title: str
    reward: int
    is_visible: bool
    is_required: bool


def load_task_catalog() -> dict[str, TaskInfo]:
    """Snapshot of the task table keyed by task_id."""
    tasks = db.session.query(RewardTask).all()
    return {
        t.task_id: TaskInfo(
            id=t.id,
            task_id=t.task_id,
            title=t.title,
            reward=t.reward,
            is_visible=t.is_visible,
            is_required=t.is_required,
        )
        for t in tasks
    }


def list_tasks_for_user(user_id: int) -> list[dict]:
    """Visible tasks in display order, each with the user's claim status."""
    tasks = (
        db.session.query(RewardTask)
        .filter(RewardTask.is_visible.is_(True))
        .order_by(RewardTask.sort_order.asc(), RewardTask.id.asc())
        .all()
    )
    claims = dict(
        db.session.query(RewardClaim.task_id, RewardClaim.status)
        .filter(RewardClaim.user_id == user_id)
        .all()
    )

    result = []
    for task in tasks:
        status = claims.get(task.task_id)
        result.append({
            "id": task.task_id,
            "title": task.title,
            "description": task.description or "",
            "reward": task.reward,
            "completed": status in ("pending", "approved"),
            "status": status,
        })
    return result


def _has_claim(user_id: int, task_id: str) -> bool:
    return (
        db.session.query(RewardClaim.id)
        .filter(RewardClaim.user_id == user_id, RewardClaim.task_id == task_id)
        .first()
        is not None
    )


def submit_reward_claim(
    user_id: int,
    task_id: str | None,
    proof_type: str | None,
    proof_text: str | None,
    files,
    catalog: dict[str, TaskInfo],
    blob_store=None,
) -> RewardClaim:
    """
    Record a pending claim for task_id with its proof.

    files is an iterable of (form_field_name, FileStorage). Each file is
    stored through the blob store and its URL lands in the image, audio
    or video slot picked by classify_upload.
    """
    task_id = coerce_str(task_id, "task_id")
    proof_text = coerce_str(proof_text, "proof_text")
    task = catalog.get(task_id)
    if task is None:
        raise UnknownTaskError("Invalid task ID", details={"task_id": task_id})
    if not task.is_visible:
        raise UnknownTaskError("Task is not available", details={"task_id": task_id})

    if proof_type not in PROOF_TYPES:
        raise ValidationError(
            f"Invalid proof type. Must be one of: {', '.join(PROOF_TYPES)}"
        )

    if _has_claim(user_id, task.task_id):
        raise AlreadyClaimedError("Task already claimed", details={"task_id": task.task_id})

    urls: dict[str, str] = {}
    files = list(files or [])
    store = blob_store or get_blob_store()

    def _op() -> RewardClaim:
        if db.session.get(User, user_id) is None:
            raise NotFoundError("User not found")
        claim = RewardClaim(
            user_id=user_id,
            task_id=task.task_id,
            task_title=task.title,
            amount=task.reward,
            status="pending",
            proof_type=proof_type,
            proof_text=proof_text,
            proof_image_url=urls.get("image"),
            proof_audio_url=urls.get("audio"),
            proof_video_url=urls.get("video"),
            admin_notes="",
        )
        db.session.add(claim)
        db.session.flush()
        return claim

    try:
        for field_name, file in files:
            slot = classify_upload(field_name, file.mimetype)
            if slot is None or slot in urls:
                continue
            urls[slot] = store.store(file)
        return run_in_transaction(_op)
    except Exception as exc:
        # Nothing references the proof files once the insert is gone
        for url in urls.values():
            store.delete(url)
        if isinstance(exc, IntegrityError):
            raise AlreadyClaimedError("Task already claimed", details={"task_id": task.task_id})
        raise


def _required_task_ids() -> set[str]:
    rows = db.session.query(RewardTask.task_id).filter(RewardTask.is_required.is_(True)).all()
    return {row[0] for row in rows}


def _approved_task_ids(user_id: int) -> set[str]:
    rows = (
        db.session.query(RewardClaim.task_id)
        .filter(RewardClaim.user_id == user_id, RewardClaim.status == "approved")
        .distinct()
        .all()
    )
    return {row[0] for row in rows}


def _grant_completion_bonus(user: User, admin_id: int, now) -> RewardClaim | None:
    """Insert and credit the bonus claim if user just became eligible."""
    required = _required_task_ids()
    if not required or not required <= _approved_task_ids(user.id):
        return None
    if _has_claim(user.id, COMPLETION_BONUS_TASK_ID):
        return None

    amount = current_app.config["COMPLETION_BONUS_POINTS"]
    bonus = RewardClaim(
        user_id=user.id,
        task_id=COMPLETION_BONUS_TASK_ID,
        task_title=COMPLETION_BONUS_TITLE,
        amount=amount,
        status="approved",
        proof_type="text",
        proof_text="Automatic bonus for completing all tasks",
        admin_notes="",
        approved_by_user_id=admin_id,
        approved_at=now,
    )
    db.session.add(bonus)
    db.session.flush()

    if amount > 0:
        apply_adjustment(
            user=user,
            adjustment_type="add",
            points=amount,
            reason=COMPLETION_BONUS_TITLE,
            adjusted_by_user_id=admin_id,
            reward_claim_id=bonus.id,
        )
    return bonus


def update_reward_status(
    claim_id: int,
    status: str,
    admin_id: int,
    notes: str | None = None,
) -> RewardClaim:
    """Approve or reject a claim, crediting the ledger on approval."""
    if status not in ("approved", "rejected"):
        raise ValidationError("Invalid status")
    notes = coerce_str(notes, "admin_notes")

    def _op() -> tuple[RewardClaim, bool, RewardClaim | None]:
        claim = lock_for_update(db.session.query(RewardClaim).filter_by(id=claim_id)).first()
        if claim is None:
            raise NotFoundError("Reward not found")

        changed = claim.status != status
        claim.admin_notes = notes
        bonus = None

        if not changed:
            return claim, False, None

        now = utcnow()
        if status == "approved":
            claim.status = "approved"
            claim.approved_at = now
            claim.approved_by_user_id = admin_id

            user = lock_user(claim.user_id)
            if claim.amount > 0:
                task_pk = (
                    db.session.query(RewardTask.id)
                    .filter(RewardTask.task_id == claim.task_id)
                    .scalar()
                )
                apply_adjustment(
                    user=user,
                    adjustment_type="add",
                    points=claim.amount,
                    reason=f"Reward approved: {claim.task_title}"[:255],
                    adjusted_by_user_id=admin_id,
                    reward_task_id=task_pk,
                    reward_claim_id=claim.id,
                )
            bonus = _grant_completion_bonus(user, admin_id, now)
        else:
            if claim.status == "approved":
                raise ConflictError(
                    "Approved rewards cannot be rejected",
                    details={"claim_id": claim.id},
                )
            claim.status = "rejected"
            claim.rejected_at = now

        return claim, True, bonus

    claim, changed, bonus = run_in_transaction(_op)

    if bonus is not None:
        current_app.logger.info(
            "completion bonus granted user_id=%s amount=%s", bonus.user_id, bonus.amount
        )
    if changed:
        if claim.status == "approved":
            notification_service.notify_reward_approved(claim.user, claim.task_title, claim.amount)
        else:
            notification_service.notify_reward_rejected(claim.user, claim.task_title, claim.admin_notes)
    return claim


def get_user_rewards(user_id: int) -> dict:
    """All of a user's claims, newest first, plus the approved total."""
    claims = (
        db.session.query(RewardClaim)
        .filter(RewardClaim.user_id == user_id)
        .order_by(RewardClaim.created_at.desc(), RewardClaim.id.desc())
        .all()
    )
    total_earned = (
        db.session.query(func.coalesce(func.sum(RewardClaim.amount), 0))
        .filter(RewardClaim.user_id == user_id, RewardClaim.status == "approved")
        .scalar()
    )
    return {"rewards": claims, "total_earned": int(total_earned or 0)}


def get_user_pending_requests(user_id: int) -> list[RewardClaim]:
    return (
        db.session.query(RewardClaim)
        .filter(RewardClaim.user_id == user_id, RewardClaim.status == "pending")
        .order_by(RewardClaim.created_at.desc(), RewardClaim.id.desc())
        .all()
    )


def get_all_requests(status: str | None = "pending", page: int = 1, limit: int = 10) -> dict:
    query = db.session.query(RewardClaim)
    if status and status != "all":
        if status not in CLAIM_STATUSES:
            raise ValidationError("Invalid status")
        query = query.filter(RewardClaim.status == status)

    total = query.count()
    requests = (
        query.order_by(RewardClaim.created_at.desc(), RewardClaim.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"requests": requests, "pagination": pagination_meta(page, limit, total)}


def get_reward_stats() -> dict:
    def _count(status):
        return func.coalesce(func.sum(case((RewardClaim.status == status, 1), else_=0)), 0)

    total, pending, approved, rejected, paid = db.session.query(
        func.count(RewardClaim.id),
        _count("pending"),
        _count("approved"),
        _count("rejected"),
        func.coalesce(func.sum(case((RewardClaim.status == "approved", RewardClaim.amount), else_=0)), 0),
    ).one()

    by_task = (
        db.session.query(
            RewardClaim.task_id,
            func.count(RewardClaim.id).label("count"),
            func.sum(RewardClaim.amount).label("total_amount"),
        )
        .filter(RewardClaim.status == "approved")
        .group_by(RewardClaim.task_id)
        .order_by(func.count(RewardClaim.id).desc(), RewardClaim.task_id.asc())
        .all()
    )

    return {
        "overview": {
            "total_requests": int(total or 0),
            "pending_requests": int(pending or 0),
            "approved_requests": int(approved or 0),
            "rejected_requests": int(rejected or 0),
            "total_amount_paid": int(paid or 0),
        },
        "by_task": [
            {"task_id": row.task_id, "count": int(row.count), "total_amount": int(row.total_amount or 0)}
            for row in by_task
        ],
    }


# --- Task catalog admin ---

def _coerce_reward(value) -> int:
    reward = coerce_int(value, "reward")
    if reward < 0:
        raise ValidationError("reward must be >= 0")
    return reward


def _coerce_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def list_all_tasks() -> list[RewardTask]:
    return (
        db.session.query(RewardTask)
        .order_by(RewardTask.sort_order.asc(), RewardTask.created_at.desc(), RewardTask.id.asc())
        .all()
    )


def create_task(payload: dict, admin_id: int | None) -> RewardTask:
    payload = payload or {}
    task_id = (payload.get("task_id") or payload.get("taskId") or "").strip()
    title = (payload.get("title") or "").strip()
    if not task_id or not title or payload.get("reward") is None:
        raise ValidationError("Task ID, title, and reward are required")
    if task_id == COMPLETION_BONUS_TASK_ID:
        raise ValidationError(f"{COMPLETION_BONUS_TASK_ID} is a reserved task ID")

    order = payload.get("sort_order", payload.get("order"))
    task = RewardTask(
        task_id=task_id,
        title=title,
        description=(payload.get("description") or "").strip(),
        reward=_coerce_reward(payload["reward"]),
        is_visible=_coerce_bool(payload.get("is_visible", True)),
        is_required=_coerce_bool(payload.get("is_required", True)),
        sort_order=coerce_int(order, "sort_order") if order is not None else 0,
        created_by_user_id=admin_id,
    )

    def _op() -> RewardTask:
        if db.session.query(RewardTask.id).filter_by(task_id=task_id).first() is not None:
            raise ConflictError("Task ID already exists", details={"task_id": task_id})
        db.session.add(task)
        db.session.flush()
        return task

    try:
        return run_in_transaction(_op)
    except IntegrityError:
        raise ConflictError("Task ID already exists", details={"task_id": task_id})


def _get_task(task_pk: int) -> RewardTask:
    task = db.session.get(RewardTask, task_pk)
    if task is None:
        raise NotFoundError("Reward task not found")
    return task


def update_task(task_pk: int, payload: dict) -> RewardTask:
    """Patch title/description/reward/visibility/required/order. task_id is immutable."""
    payload = payload or {}

    def _op() -> RewardTask:
        task = _get_task(task_pk)
        if "title" in payload:
            title = (payload["title"] or "").strip()
            if not title:
                raise ValidationError("title cannot be blank")
            task.title = title
        if "description" in payload:
            task.description = (payload["description"] or "").strip()
        if "reward" in payload:
            task.reward = _coerce_reward(payload["reward"])
        if "is_visible" in payload:
            task.is_visible = _coerce_bool(payload["is_visible"])
        if "is_required" in payload:
            task.is_required = _coerce_bool(payload["is_required"])
        order = payload.get("sort_order", payload.get("order"))
        if order is not None:
            task.sort_order = coerce_int(order, "sort_order")
        return task

    return run_in_transaction(_op)


def delete_task(task_pk: int) -> None:
    """
    Existing claims keep their task_id, title and amount snapshots;
    ledger rows that referenced the task lose the link.
    """
    def _op() -> None:
        task = _get_task(task_pk)
        db.session.query(PointsAdjustment).filter(PointsAdjustment.reward_task_id == task.id).update(
            {PointsAdjustment.reward_task_id: None}, synchronize_session="fetch"
        )
        db.session.delete(task)

    run_in_transaction(_op)


def toggle_task_visibility(task_pk: int) -> RewardTask:
    def _op() -> RewardTask:
        task = _get_task(task_pk)
        task.is_visible = not task.is_visible
        return task

    return run_in_transaction(_op)


def seed_default_tasks(admin_id: int | None = None) -> int:
    """Insert the default task set, skipping task ids that already exist. Returns the count added."""
    def _op() -> int:
        existing = {row[0] for row in db.session.query(RewardTask.task_id).all()}
        added = 0
        for order, (task_id, title) in enumerate(DEFAULT_TASKS, start=1):
            if task_id in existing:
                continue
            db.session.add(RewardTask(
                task_id=task_id,
                title=title,
                description="",
                reward=DEFAULT_TASK_REWARD,
                is_visible=True,
                is_required=True,
                sort_order=order,
                created_by_user_id=admin_id,
            ))
            added += 1
        return added

    return run_in_transaction(_op)
