"""
SketchFlow
Assignment model: one sketch request handed to one drafting center.

Lifecycle:
    ASSIGNED ──accept──▶ IN_PROGRESS ──▶ COMPLETED
        │                    │  ▲
        │                    ▼  │
        │                  ON_HOLD
        └──reject / cancel──▶ CANCELLED

    COMPLETED and CANCELLED are terminal. Administrators may move an
    assignment between any non-terminal states; operators only answer
    an ASSIGNED one.

At most one non-CANCELLED assignment exists per sketch request. The partial
unique index below is the authority; the service pre-check only gives a
friendlier error.
"""

from datetime import datetime, timezone

from sketchflow.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

ASSIGNMENT_STATUSES = {"ASSIGNED", "IN_PROGRESS", "COMPLETED", "ON_HOLD", "CANCELLED"}

TERMINAL_STATUSES = {"COMPLETED", "CANCELLED"}

ACTIVE_STATUSES = ASSIGNMENT_STATUSES - {"CANCELLED"}

MAX_ASSIGNMENT_NOTES_LENGTH = 1000

RESPONSE_ACTIONS = {"accept", "reject"}


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

# Administrator updates
ADMIN_TRANSITIONS = {
    "ASSIGNED":    ["IN_PROGRESS", "ON_HOLD", "COMPLETED", "CANCELLED"],
    "IN_PROGRESS": ["ASSIGNED", "ON_HOLD", "COMPLETED", "CANCELLED"],
    "ON_HOLD":     ["ASSIGNED", "IN_PROGRESS", "COMPLETED", "CANCELLED"],
    "COMPLETED":   [],
    "CANCELLED":   [],
}

# Drafting-center operator responses
RESPONSE_TRANSITIONS = {
    "accept": ("ASSIGNED", "IN_PROGRESS"),
    "reject": ("ASSIGNED", "CANCELLED"),
}


def validate_admin_transition(old_status, new_status):
    """Return True if an administrator may move an Assignment old → new."""
    return new_status in ADMIN_TRANSITIONS.get(old_status, [])


class Assignment(db.Model):
    __tablename__ = "assignments"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('ASSIGNED','IN_PROGRESS','COMPLETED','ON_HOLD','CANCELLED')",
            name="ck_assignment_status",
        ),
        db.Index(
            "uq_assignment_active_per_request",
            "sketch_request_id",
            unique=True,
            sqlite_where=db.text("status <> 'CANCELLED'"),
            postgresql_where=db.text("status <> 'CANCELLED'"),
        ),
        db.Index("ix_assignment_center_status_assigned", "drafting_center_id", "status", "assigned_at"),
        db.Index("ix_assignment_assignee_status", "assigned_to_user_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    sketch_request_id = db.Column(
        db.Integer, db.ForeignKey("sketch_requests.id"), nullable=False, index=True,
    )
    drafting_center_id = db.Column(
        db.Integer, db.ForeignKey("drafting_centers.id"), nullable=False, index=True,
    )
    assigned_to_user_id = db.Column(
        db.String(64), nullable=True,
        comment="Operator who accepted the work; NULL until accepted",
    )
    status = db.Column(db.String(20), nullable=False, default="ASSIGNED", index=True)
    assigned_by_user_id = db.Column(db.String(64), nullable=False)
    assigned_at = db.Column(db.DateTime, nullable=False, default=_utcnow, index=True)
    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.String(MAX_ASSIGNMENT_NOTES_LENGTH), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    sketch_request = db.relationship("SketchRequest", lazy="joined")
    drafting_center = db.relationship("DraftingCenter", lazy="joined")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_request: bool = False) -> dict:
        center = self.drafting_center
        d = {
            "id": self.id,
            "sketch_request_id": self.sketch_request_id,
            "drafting_center_id": self.drafting_center_id,
            "drafting_center": (
                {"id": center.id, "name": center.name, "code": center.code}
                if center else None
            ),
            "assigned_to_user_id": self.assigned_to_user_id,
            "status": self.status,
            "assigned_by_user_id": self.assigned_by_user_id,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_request and self.sketch_request is not None:
            d["sketch_request"] = self.sketch_request.to_dict()
        return d

    def __repr__(self):
        return f"<Assignment {self.id}: request={self.sketch_request_id} [{self.status}]>"
