# Overview: Atomic daily order number allocation.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderSequence
from ..validation import ConflictError

ORDER_NUMBER_PREFIX = "ORD"


class SequenceError(ConflictError):
    """Raised when order sequence operations fail."""


def format_order_number(day: str, number: int, pad: int = 3) -> str:
    """The day runs out of numbers after 10**pad - 1 orders; wider numbers are refused."""
    if number >= 10 ** pad:
        raise SequenceError(
            f"Daily order limit of {10 ** pad - 1} reached",
            details={"day": day},
        )
    return f"{ORDER_NUMBER_PREFIX}{day}{number:0{pad}d}"


def next_order_number(at: datetime) -> str:
    """
    Allocate the next order number for at's calendar day: ORD + YYMMDD + nnn.

    The increment is a single UPDATE on the day's row, so two concurrent
    checkouts can never read the same value. The first order of a day
    inserts the row; losing that insert race falls back to the UPDATE.

    Must run before any other pending change in the caller's transaction:
    the insert-race fallback rolls the session back.
    """
    if at is None:
        raise SequenceError("timestamp is required")

    day = at.strftime("%y%m%d")

    stmt = (
        update(OrderSequence)
        .where(OrderSequence.day == day)
        .values(next_number=OrderSequence.next_number + 1)
    )

    def _read_allocated() -> int:
        db.session.flush()
        current = (
            db.session.query(OrderSequence.next_number)
            .filter_by(day=day)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        return format_order_number(day, _read_allocated())

    seq = OrderSequence(day=day, next_number=2)
    db.session.add(seq)
    try:
        db.session.flush()
        return format_order_number(day, 1)
    except IntegrityError:
        db.session.rollback()
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return format_order_number(day, _read_allocated())
