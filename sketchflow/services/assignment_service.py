"""
Assignment state machine — service layer.

Business logic for:
    - create:   administrator hands a sketch request to a drafting center
    - respond:  the center's operator accepts or rejects an ASSIGNED job
    - update_assignment: administrator moves status / due date / notes
    - reads:    by center (operator or admin), all (admin), single, counts

Coupling with the sketch request:
    create            → request.status = ASSIGNED
    reject / CANCELLED → request.status = PENDING (free for re-assignment)
    accept / COMPLETED / ON_HOLD leave the request status unchanged
Both rows are written in one session transaction, so a failure leaves
neither change behind.

Concurrency:
    - One non-cancelled assignment per request is enforced by a partial
      unique index; the pre-check only produces a friendlier error, and an
      IntegrityError from a concurrent create is reported the same way.
    - Status changes are compare-and-set (``UPDATE ... WHERE status = old``)
      so two actors racing on one assignment cannot both win.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from sketchflow.auth import Actor
from sketchflow.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from sketchflow.models import db
from sketchflow.models.assignment import (
    ACTIVE_STATUSES,
    ASSIGNMENT_STATUSES,
    MAX_ASSIGNMENT_NOTES_LENGTH,
    RESPONSE_ACTIONS,
    RESPONSE_TRANSITIONS,
    Assignment,
    validate_admin_transition,
)
from sketchflow.models.sketch_request import SketchRequest
from sketchflow.services import drafting_center_service, notification_service
from sketchflow.services.hierarchy_validator import canonical_id
from sketchflow.utils.errors import E
from sketchflow.utils.helpers import clean_str, paginate_select, parse_datetime

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("status", "due_date", "notes")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _int_id(value, field: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{field} is required", details={field: "Required"},
                              code=E.VALIDATION_REQUIRED)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id",
                              details={field: "Invalid id"}) from None


def _notes(value) -> str | None:
    notes = clean_str(value)
    if notes and len(notes) > MAX_ASSIGNMENT_NOTES_LENGTH:
        raise ValidationError(
            f"notes must be at most {MAX_ASSIGNMENT_NOTES_LENGTH} characters",
            details={"notes": f"Max {MAX_ASSIGNMENT_NOTES_LENGTH} characters"},
        )
    return notes


def _status(value) -> str:
    status = (clean_str(value) or "").upper()
    if status not in ASSIGNMENT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(ASSIGNMENT_STATUSES))}",
            details={"status": "Invalid value"},
        )
    return status


def _load(assignment_id) -> Assignment:
    try:
        pk = int(assignment_id)
    except (TypeError, ValueError):
        raise NotFoundError("Assignment", assignment_id) from None
    assignment = db.session.get(Assignment, pk)
    if assignment is None:
        raise NotFoundError("Assignment", assignment_id)
    return assignment


def _active_for_request(request_id: int) -> Assignment | None:
    return db.session.execute(
        select(Assignment).where(
            Assignment.sketch_request_id == request_id,
            Assignment.status.in_(ACTIVE_STATUSES),
        )
    ).unique().scalar_one_or_none()


def _already_assigned(existing: Assignment | None, request_id: int) -> ConflictError:
    details = {"sketch_request_id": request_id}
    if existing is not None:
        details["assignment_id"] = existing.id
    return ConflictError(
        "Assignment", "sketch_request_id", request_id,
        code=E.ALREADY_ASSIGNED,
        message=(
            "This sketch request is already assigned. Cancel the existing "
            "assignment first or update it."
        ),
        details=details,
    )


def _require_operator_center(actor: Actor) -> str:
    if not actor.is_operator:
        raise ForbiddenError("Only drafting center operators can respond to assignments")
    if not actor.center_id:
        raise ForbiddenError("Your account is not linked to a drafting center",
                             code=E.CENTER_NOT_LINKED)
    return actor.center_id


def _can_read_center(actor: Actor, center_id) -> bool:
    if actor.is_admin:
        return True
    return actor.is_operator and canonical_id(actor.center_id) == canonical_id(center_id)


def _compare_and_set(assignment: Assignment, expected: str, values: dict) -> None:
    """Apply ``values`` only if the row still has status ``expected``.

    Raises:
        ValidationError: another actor changed the status first.
    """
    result = db.session.execute(
        update(Assignment)
        .where(Assignment.id == assignment.id, Assignment.status == expected)
        .values(updated_at=_utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        current = db.session.get(Assignment, assignment.id)
        current_status = current.status if current else None
        logger.info("Assignment %s status moved concurrently: expected %s, found %s",
                    assignment.id, expected, current_status)
        raise ValidationError(
            f"Assignment status changed to {current_status} by another request",
            details={"current_status": current_status},
            code=E.INVALID_TRANSITION,
        )


def _set_request_status(request_id: int, status: str) -> None:
    row = db.session.get(SketchRequest, request_id)
    if row is not None:
        row.status = status


# ── Create ───────────────────────────────────────────────────────────────────


def create(actor: Actor, data: dict) -> Assignment:
    """Assign a sketch request to a drafting center.

    Raises:
        ForbiddenError: actor is not an administrator.
        NotFoundError: request missing, or center missing / soft-deleted.
        ConflictError(ALREADY_ASSIGNED): a non-cancelled assignment exists.
    """
    if not actor.is_admin:
        raise ForbiddenError("Only administrators can create assignments")

    request_id = _int_id(data.get("sketch_request_id"), "sketch_request_id")
    center_id = _int_id(data.get("drafting_center_id"), "drafting_center_id")
    due_date = parse_datetime(data.get("due_date"), "due_date")
    notes = _notes(data.get("notes"))

    sketch = db.session.get(SketchRequest, request_id)
    if sketch is None:
        raise NotFoundError("SketchRequest", request_id)
    center = drafting_center_service.get_by_id(center_id)

    existing = _active_for_request(request_id)
    if existing is not None:
        raise _already_assigned(existing, request_id)

    assignment = Assignment(
        sketch_request_id=sketch.id,
        drafting_center_id=center.id,
        status="ASSIGNED",
        assigned_by_user_id=actor.id,
        assigned_at=_utcnow(),
        due_date=due_date,
        notes=notes,
    )
    db.session.add(assignment)
    sketch.status = "ASSIGNED"
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.info("Concurrent assignment for request %s rejected by constraint: %s",
                    request_id, exc.orig)
        raise _already_assigned(_active_for_request(request_id), request_id) from exc

    logger.info("Assignment created id=%s request=%s center=%s by=%s",
                assignment.id, request_id, center.id, actor.id,
                extra={"assignment_id": assignment.id, "sketch_request_id": request_id,
                       "drafting_center_id": center.id})
    notification_service.notify(
        "assignment.created",
        assignment_id=assignment.id,
        sketch_request_id=request_id,
        drafting_center_id=center.id,
    )
    return assignment


# ── Respond ──────────────────────────────────────────────────────────────────


def respond(actor: Actor, assignment_id, action: str | None = "accept") -> Assignment:
    """Operator accepts or rejects an ASSIGNED assignment of their center.

    accept → IN_PROGRESS, assigned_to_user_id = actor
    reject → CANCELLED, request back to PENDING
    """
    action = (clean_str(action) or "accept").lower()
    if action not in RESPONSE_ACTIONS:
        raise ValidationError(
            f"action must be one of: {', '.join(sorted(RESPONSE_ACTIONS))}",
            details={"action": "Invalid value"},
        )
    center_id = _require_operator_center(actor)

    assignment = _load(assignment_id)
    if canonical_id(assignment.drafting_center_id) != canonical_id(center_id):
        logger.warning("Operator %s (center %s) tried to respond to assignment %s of center %s",
                       actor.id, center_id, assignment.id, assignment.drafting_center_id)
        raise ForbiddenError("This assignment is not for your drafting center",
                             code=E.NOT_YOUR_CENTER)

    from_status, to_status = RESPONSE_TRANSITIONS[action]
    if assignment.status != from_status:
        raise ValidationError(
            f"Only {from_status} assignments can be accepted or rejected; "
            f"current status is {assignment.status}",
            details={"current_status": assignment.status},
            code=E.INVALID_STATUS_FOR_RESPONSE,
        )

    values = {"status": to_status}
    if action == "accept":
        values["assigned_to_user_id"] = actor.id
    _compare_and_set(assignment, from_status, values)
    if action == "reject":
        _set_request_status(assignment.sketch_request_id, "PENDING")
    db.session.commit()

    logger.info("Assignment %s %sed by operator %s → %s",
                assignment.id, action, actor.id, to_status,
                extra={"assignment_id": assignment.id,
                       "drafting_center_id": assignment.drafting_center_id})
    notification_service.notify(
        f"assignment.{action}ed",
        assignment_id=assignment.id,
        drafting_center_id=assignment.drafting_center_id,
        operator_id=actor.id,
    )
    return assignment


# ── Update ───────────────────────────────────────────────────────────────────


def update_assignment(actor: Actor, assignment_id, data: dict) -> Assignment:
    """Administrator update of status, due_date and notes.

    Non-terminal statuses move freely among themselves; COMPLETED stamps
    completed_at; CANCELLED frees the request (PENDING). COMPLETED and
    CANCELLED are terminal: their status cannot change, though due_date and
    notes stay editable. Re-sending the current status is a no-op.
    """
    if not actor.is_admin:
        raise ForbiddenError("Only administrators can update assignments")
    unknown = sorted(set(data) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError(
            f"Only {', '.join(UPDATABLE_FIELDS)} can be updated",
            details={field: "Not updatable" for field in unknown},
        )
    if not any(field in data for field in UPDATABLE_FIELDS):
        raise ValidationError("Provide at least one of status, due_date, notes",
                              code=E.VALIDATION_REQUIRED)

    values = {}
    if "due_date" in data:
        values["due_date"] = parse_datetime(data.get("due_date"), "due_date")
    if "notes" in data:
        values["notes"] = _notes(data.get("notes"))
    new_status = _status(data["status"]) if "status" in data else None

    assignment = _load(assignment_id)
    old_status = assignment.status

    if new_status is not None and new_status != old_status:
        if assignment.is_terminal:
            raise ValidationError(
                f"Assignment is {old_status}; its status can no longer change",
                details={"current_status": old_status, "requested_status": new_status},
                code=E.INVALID_TRANSITION,
            )
        if not validate_admin_transition(old_status, new_status):
            raise ValidationError(
                f"Invalid transition: {old_status} → {new_status}",
                details={"current_status": old_status, "requested_status": new_status},
                code=E.INVALID_TRANSITION,
            )
        values["status"] = new_status
        if new_status == "COMPLETED":
            values["completed_at"] = _utcnow()
        _compare_and_set(assignment, old_status, values)
        if new_status == "CANCELLED":
            _set_request_status(assignment.sketch_request_id, "PENDING")
    else:
        for key, value in values.items():
            setattr(assignment, key, value)
    db.session.commit()

    if "status" in values:
        logger.info("Assignment %s status %s → %s by %s",
                    assignment.id, old_status, values["status"], actor.id)
        notification_service.notify(
            "assignment.status_changed",
            assignment_id=assignment.id,
            old_status=old_status,
            new_status=values["status"],
        )
    else:
        logger.info("Assignment %s updated fields=%s by %s", assignment.id, sorted(values), actor.id)
    return assignment


# ── Read ─────────────────────────────────────────────────────────────────────


def get_by_id(actor: Actor, assignment_id) -> Assignment:
    """Administrators read any assignment; operators those of their center."""
    assignment = _load(assignment_id)
    if not _can_read_center(actor, assignment.drafting_center_id):
        raise ForbiddenError("Insufficient permissions")
    return assignment


def list_by_center(actor: Actor, center_id, filters: dict, page: int, limit: int) -> tuple[list, int]:
    """Assignments of one center, newest first.

    CANCELLED rows are left out unless ``status`` asks for them.
    """
    if not _can_read_center(actor, center_id):
        raise ForbiddenError("Insufficient permissions")
    center = drafting_center_service.get_by_id(center_id)

    stmt = select(Assignment).where(Assignment.drafting_center_id == center.id)
    if clean_str(filters.get("status")):
        stmt = stmt.where(Assignment.status == _status(filters["status"]))
    else:
        stmt = stmt.where(Assignment.status != "CANCELLED")
    stmt = stmt.order_by(Assignment.assigned_at.desc(), Assignment.id.desc())
    return paginate_select(stmt, page, limit)


def list_mine(actor: Actor, filters: dict, page: int, limit: int) -> tuple[list, int]:
    """Operator shortcut for the assignments of their own center."""
    center_id = _require_operator_center(actor)
    return list_by_center(actor, center_id, filters, page, limit)


def list_all(actor: Actor, filters: dict, page: int, limit: int) -> tuple[list, int]:
    """Administrator list; filters: drafting_center_id, sketch_request_id, status."""
    if not actor.is_admin:
        raise ForbiddenError("Only administrators can list all assignments")
    stmt = select(Assignment)
    if clean_str(filters.get("drafting_center_id")):
        stmt = stmt.where(Assignment.drafting_center_id == _int_id(
            filters["drafting_center_id"], "drafting_center_id"))
    if clean_str(filters.get("sketch_request_id")):
        stmt = stmt.where(Assignment.sketch_request_id == _int_id(
            filters["sketch_request_id"], "sketch_request_id"))
    if clean_str(filters.get("status")):
        stmt = stmt.where(Assignment.status == _status(filters["status"]))
    stmt = stmt.order_by(Assignment.assigned_at.desc(), Assignment.id.desc())
    return paginate_select(stmt, page, limit)


def counts_by_center(actor: Actor, center_id) -> dict:
    """Non-cancelled assignment totals for one center, keyed by status."""
    if not _can_read_center(actor, center_id):
        raise ForbiddenError("Insufficient permissions")
    center = drafting_center_service.get_by_id(center_id)
    rows = db.session.execute(
        select(Assignment.status, func.count(Assignment.id))
        .where(
            Assignment.drafting_center_id == center.id,
            Assignment.status != "CANCELLED",
        )
        .group_by(Assignment.status)
    ).all()
    counts = {status: 0 for status in sorted(ACTIVE_STATUSES)}
    for status, count in rows:
        counts[status] = count
    return {"drafting_center_id": center.id, "counts": counts, "total": sum(counts.values())}
