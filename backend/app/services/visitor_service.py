"""
Visitor Service - in-store check-ins

Each check-in appends one VisitorVisit and, in the same transaction,
bumps the visitor's visit_count and last_visit, so the aggregates always
equal len(visits) and the newest visit timestamp.

Visitors are keyed by phone (unique). Two first check-ins racing on the
same phone collide on that constraint; the loser re-runs and lands on
the row the winner created.
"""

from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User, Visitor, VisitorVisit
from ..validation import AuthError, NotFoundError, ValidationError, coerce_str, pagination_meta
from app.time_utils import day_bounds, parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_in_transaction

MEMBER_FILTERS = ("all", "members", "non-members")


class NotRegisteredError(AuthError):
    """Self check-in with a phone that belongs to no registered user."""

    status_code = 403


def _record_visit(visitor: Visitor, at, checked_in_by: str, admin_id: int | None = None) -> None:
    visitor.visits.append(VisitorVisit(
        timestamp=at,
        checked_in_by=checked_in_by,
        admin_user_id=admin_id,
    ))
    visitor.visit_count = (visitor.visit_count or 0) + 1
    visitor.last_visit = at


def _run_upsert(op):
    try:
        return run_in_transaction(op)
    except IntegrityError:
        return run_in_transaction(op)


def check_in_visitor(phone: str | None) -> dict:
    """Self check-in by phone. Only registered users may check in."""
    phone = coerce_str(phone, "phone", allow_int=True)
    if not phone:
        raise ValidationError("Phone number is required")

    def _op() -> dict:
        user = db.session.query(User).filter_by(phone=phone).first()
        if user is None:
            raise NotRegisteredError(
                "Phone number is not registered. Please sign up first.",
                details={"phone": phone},
            )

        now = utcnow()
        visitor = lock_for_update(db.session.query(Visitor).filter_by(phone=phone)).first()
        if visitor is None:
            visitor = Visitor(phone=phone, visit_count=0, is_archived=False)
            db.session.add(visitor)

        if not visitor.is_member or visitor.user_id is None:
            visitor.is_member = True
            visitor.user_id = user.id

        _record_visit(visitor, now, "self")
        db.session.flush()
        return {
            "visitor": visitor,
            "is_member": visitor.is_member,
            "is_new_visitor": visitor.visit_count == 1,
            "user_name": user.full_name,
        }

    return _run_upsert(_op)


def admin_check_in_user(user_id: int, admin_id: int) -> dict:
    """Admin check-in on behalf of a registered user."""
    def _op() -> dict:
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        now = utcnow()
        visitor = lock_for_update(db.session.query(Visitor).filter_by(user_id=user.id)).first()
        if visitor is None:
            visitor = lock_for_update(db.session.query(Visitor).filter_by(phone=user.phone)).first()
        if visitor is None:
            visitor = Visitor(phone=user.phone, visit_count=0, is_archived=False)
            db.session.add(visitor)

        visitor.is_member = True
        visitor.user_id = user.id

        _record_visit(visitor, now, "admin", admin_id)
        db.session.flush()
        return {"visitor": visitor, "user": user}

    return _run_upsert(_op)


def set_visitor_archived(visitor_id: int, archived: bool) -> Visitor:
    def _op() -> Visitor:
        visitor = db.session.get(Visitor, visitor_id)
        if visitor is None:
            raise NotFoundError("Visitor not found")
        visitor.is_archived = archived
        return visitor

    return run_in_transaction(_op)


def archive_visitor(visitor_id: int) -> Visitor:
    return set_visitor_archived(visitor_id, True)


def unarchive_visitor(visitor_id: int) -> Visitor:
    return set_visitor_archived(visitor_id, False)


def _not_archived():
    return or_(Visitor.is_archived.is_(False), Visitor.is_archived.is_(None))


def _statistics() -> dict:
    base = db.session.query(func.count(Visitor.id)).filter(_not_archived())
    today_start, _ = day_bounds(utcnow().date())
    total = base.scalar()
    members = base.filter(Visitor.is_member.is_(True)).scalar()
    return {
        "total_visitors": int(total or 0),
        "total_members": int(members or 0),
        "total_non_members": int((total or 0) - (members or 0)),
        "today_visitors": int(base.filter(Visitor.last_visit >= today_start).scalar() or 0),
    }


def list_visitors(
    search: str | None = None,
    member_filter: str | None = "all",
    date: str | None = None,
    page: int = 1,
    limit: int = 50,
    archived: bool = False,
) -> dict:
    """
    Visitors ordered by last visit, newest first.

    search matches the phone substring; date keeps visitors whose last
    visit fell on that day. Statistics cover all non-archived visitors.
    """
    if member_filter and member_filter not in MEMBER_FILTERS:
        raise ValidationError(f"memberFilter must be one of: {', '.join(MEMBER_FILTERS)}")

    query = db.session.query(Visitor)
    query = query.filter(Visitor.is_archived.is_(True)) if archived else query.filter(_not_archived())

    if search and search.strip():
        query = query.filter(Visitor.phone.ilike(f"%{search.strip()}%"))

    if member_filter == "members":
        query = query.filter(Visitor.is_member.is_(True))
    elif member_filter == "non-members":
        query = query.filter(Visitor.is_member.is_(False))

    if date:
        try:
            day = parse_iso_datetime(date)
        except ValueError:
            raise ValidationError("date must be an ISO-8601 date")
        if day is not None:
            start, end = day_bounds(day.date())
            query = query.filter(Visitor.last_visit >= start, Visitor.last_visit < end)

    total = query.count()
    visitors = (
        query.order_by(Visitor.last_visit.desc(), Visitor.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "visitors": visitors,
        "pagination": pagination_meta(page, limit, total),
        "statistics": _statistics(),
    }


def list_archived_visitors(search: str | None = None, page: int = 1, limit: int = 50) -> dict:
    return list_visitors(search=search, page=page, limit=limit, archived=True)


def get_visitor(visitor_id: int) -> Visitor:
    visitor = db.session.get(Visitor, visitor_id)
    if visitor is None:
        raise NotFoundError("Visitor not found")
    return visitor


def get_visitor_by_user(user_id: int) -> Visitor:
    visitor = db.session.query(Visitor).filter_by(user_id=user_id).first()
    if visitor is None:
        raise NotFoundError("Visitor record not found")
    return visitor
