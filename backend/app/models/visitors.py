from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class Visitor(db.Model):
    """
    In-store visitor, keyed by phone.

    Denormalized aggregates (visit_count, last_visit) are updated in the
    same transaction that appends a VisitorVisit, so
    visit_count == len(visits) and last_visit == visits[-1].timestamp.
    """
    __tablename__ = "visitors"
    __table_args__ = (
        db.UniqueConstraint("phone", name="uq_visitors_phone"),
        db.Index("ix_visitors_last_visit", "last_visit"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    phone = db.Column(db.String(32), nullable=False)
    is_member = db.Column(db.Boolean, nullable=False, default=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    visit_count = db.Column(db.Integer, nullable=False, default=0)
    last_visit = db.Column(db.DateTime(timezone=True), nullable=True)

    # NULL on rows written before archiving existed; treated as not archived
    is_archived = db.Column(db.Boolean, nullable=True, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("visitor", uselist=False, lazy=True))
    visits = db.relationship(
        "VisitorVisit",
        backref="visitor",
        lazy="selectin",
        order_by="VisitorVisit.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_visits: bool = True) -> dict:
        data = {
            "id": self.id,
            "phone": self.phone,
            "is_member": self.is_member,
            "user_id": self.user_id,
            "user": self.user.to_dict() if self.user is not None else None,
            "visit_count": self.visit_count,
            "last_visit": to_utc_z(self.last_visit) if self.last_visit else None,
            "is_archived": bool(self.is_archived),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_visits:
            data["visits"] = [visit.to_dict() for visit in self.visits]
        return data


class VisitorVisit(db.Model):
    """Append-only check-in history of a visitor."""
    __tablename__ = "visitor_visits"
    __table_args__ = (
        db.Index("ix_visitor_visits_visitor_timestamp", "visitor_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    visitor_id = db.Column(db.Integer, db.ForeignKey("visitors.id", ondelete="CASCADE"), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False)
    checked_in_by = db.Column(db.String(8), nullable=False, default="self")  # self, admin
    admin_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    admin = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": to_utc_z(self.timestamp),
            "checked_in_by": self.checked_in_by,
            "admin": self.admin.to_summary() if self.admin is not None else None,
        }
