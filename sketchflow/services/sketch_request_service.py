"""
Sketch Request Service.

Business logic for:
    - Submission by surveyors: field and document validation, hierarchy
      chain validation, application id reservation, persistence as PENDING
    - Reads with ownership rules (surveyors see their own; administrators
      see everything and may filter by submitter, status, drafting center)
    - Administrator overview joining each request with its current assignment
    - Status reconciliation from the live assignment

Rules:
  - The actor is always an explicit parameter (never read from g).
  - db.session.commit() happens only in service modules.
  - ``status`` is otherwise written only by assignment_service.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from sketchflow.auth import Actor
from sketchflow.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from sketchflow.models import db
from sketchflow.models.assignment import ACTIVE_STATUSES, Assignment
from sketchflow.models.sketch_request import (
    DOCUMENT_KEYS,
    MAX_EXTRA_DOCUMENTS,
    MAX_NOTES_LENGTH,
    SKETCH_STATUSES,
    SURVEY_KIND_ALIASES,
    SURVEY_KINDS,
    SketchRequest,
)
from sketchflow.services import notification_service
from sketchflow.services.application_id_service import next_application_id, realign_sequence
from sketchflow.services.hierarchy_validator import validate_chain
from sketchflow.utils.errors import E
from sketchflow.utils.helpers import bounded_str, clean_str, paginate_select, parse_datetime

logger = logging.getLogger(__name__)

_LOCATION_FIELDS = ("region_id", "sub_region_id", "sub_district_id", "settlement_id")

# Statuses the assignment workflow owns; review states are left alone
_ASSIGNMENT_DRIVEN = {"PENDING", "ASSIGNED"}

MAX_SURVEY_NUMBER_LENGTH = 100

# File reference text limits
_REF_LIMITS = {"url": 2048, "file_name": 255, "mime_type": 100}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Payload normalisation ────────────────────────────────────────────────────


def _file_ref(raw, field: str) -> dict | None:
    """Normalise a file reference: a URL string or {url, file_name, ...}.

    Returns None when no URL is present.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        url = bounded_str(raw, f"{field}.url", _REF_LIMITS["url"])
        return {"url": url, "file_name": None, "mime_type": None, "size": None,
                "uploaded_at": None} if url else None
    if not isinstance(raw, dict):
        raise ValidationError(f"{field} must be a URL or an object with a url",
                              details={field: "Invalid value"})

    url = bounded_str(raw.get("url"), f"{field}.url", _REF_LIMITS["url"])
    if not url:
        return None
    size = raw.get("size")
    if size is not None:
        if isinstance(size, bool):
            raise ValidationError(f"{field}.size must be a non-negative integer",
                                  details={f"{field}.size": "Invalid value"})
        try:
            size = int(size)
        except (TypeError, ValueError):
            raise ValidationError(f"{field}.size must be a non-negative integer",
                                  details={f"{field}.size": "Invalid value"}) from None
        if size < 0:
            raise ValidationError(f"{field}.size must be a non-negative integer",
                                  details={f"{field}.size": "Must be >= 0"})
    uploaded_at = parse_datetime(raw.get("uploaded_at"), f"{field}.uploaded_at")
    return {
        "url": url,
        "file_name": bounded_str(raw.get("file_name"), f"{field}.file_name", _REF_LIMITS["file_name"]),
        "mime_type": bounded_str(raw.get("mime_type"), f"{field}.mime_type", _REF_LIMITS["mime_type"]),
        "size": size,
        "uploaded_at": uploaded_at.isoformat() if uploaded_at else None,
    }


def _stamp(ref: dict, now_iso: str) -> dict:
    if ref.get("uploaded_at") is None:
        ref["uploaded_at"] = now_iso
    return ref


def normalise_documents(raw) -> dict:
    """Keep populated entries of the fixed key set; at least one required."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("documents must be an object keyed by document type",
                              details={"documents": "Invalid value"})
    unknown = sorted(set(raw) - set(DOCUMENT_KEYS))
    if unknown:
        raise ValidationError(
            f"Unknown document type(s): {', '.join(unknown)}",
            details={"documents": f"Allowed keys: {', '.join(DOCUMENT_KEYS)}"},
        )
    documents = {}
    for key in DOCUMENT_KEYS:
        ref = _file_ref(raw.get(key), f"documents.{key}")
        if ref is not None:
            documents[key] = ref
    if not documents:
        raise ValidationError(
            "At least one survey document is required "
            f"({', '.join(DOCUMENT_KEYS)}) with a non-empty url",
            details={"documents": "At least one document URL required"},
            code=E.NO_DOCUMENTS,
        )
    return documents


def normalise_extra_documents(raw) -> list[dict]:
    if raw is None or raw == []:
        return []
    if not isinstance(raw, list):
        raise ValidationError("extra_documents must be a list",
                              details={"extra_documents": "Invalid value"})
    if len(raw) > MAX_EXTRA_DOCUMENTS:
        raise ValidationError(
            f"extra_documents must have at most {MAX_EXTRA_DOCUMENTS} items",
            details={"extra_documents": f"Max {MAX_EXTRA_DOCUMENTS} items"},
        )
    refs = (_file_ref(item, f"extra_documents[{i}]") for i, item in enumerate(raw))
    return [ref for ref in refs if ref is not None]


def _survey_kind(payload: dict) -> str:
    raw = clean_str(payload.get("survey_kind") or payload.get("survey_type"))
    if not raw:
        raise ValidationError("survey_kind is required", details={"survey_kind": "Required"},
                              code=E.VALIDATION_REQUIRED)
    kind = raw.upper()
    kind = SURVEY_KIND_ALIASES.get(kind, kind)
    if kind not in SURVEY_KINDS:
        raise ValidationError(
            f"survey_kind must be one of: {', '.join(sorted(SURVEY_KINDS))}",
            details={"survey_kind": "Invalid value"},
        )
    return kind


def _notes(payload: dict) -> str | None:
    notes = clean_str(payload.get("notes"))
    if notes and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(
            f"notes must be at most {MAX_NOTES_LENGTH} characters",
            details={"notes": f"Max {MAX_NOTES_LENGTH} characters"},
        )
    return notes


# ── Create ───────────────────────────────────────────────────────────────────


def create(actor: Actor, payload: dict) -> SketchRequest:
    """Submit a sketch request on behalf of a surveyor.

    Raises:
        ForbiddenError: actor is not a surveyor.
        ValidationError: missing fields, no documents, oversized notes/lists.
        NotFoundError / HierarchyMismatchError: location chain invalid.
        ConflictError: the application id collided at write time. The
            sequence is realigned first, so a retry gets a fresh id.
    """
    if not actor.is_surveyor:
        raise ForbiddenError("Only surveyors can submit sketch requests")

    missing = [f for f in _LOCATION_FIELDS if payload.get(f) in (None, "")]
    survey_number = bounded_str(payload.get("survey_number"), "survey_number",
                                MAX_SURVEY_NUMBER_LENGTH)
    if not survey_number:
        missing.append("survey_number")
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={f: "Required" for f in missing},
            code=E.VALIDATION_REQUIRED,
        )

    survey_kind = _survey_kind(payload)
    documents = normalise_documents(payload.get("documents"))
    audio = _file_ref(payload.get("audio"), "audio")
    extra_documents = normalise_extra_documents(payload.get("extra_documents"))
    notes = _notes(payload)

    chain = validate_chain(*(payload[f] for f in _LOCATION_FIELDS))
    region, sub_region = chain["Region"], chain["SubRegion"]
    region_code, sub_region_code = region.code, sub_region.code

    application_id = next_application_id(region_code, sub_region_code)
    now_iso = _utcnow().isoformat()

    request_row = SketchRequest(
        submitter_id=actor.id,
        survey_kind=survey_kind,
        region_id=region.id,
        sub_region_id=sub_region.id,
        sub_district_id=chain["SubDistrict"].id,
        settlement_id=chain["Settlement"].id,
        survey_number=survey_number,
        application_id=application_id,
        documents={k: _stamp(v, now_iso) for k, v in documents.items()},
        audio=_stamp(audio, now_iso) if audio else None,
        extra_documents=[_stamp(d, now_iso) for d in extra_documents],
        notes=notes,
        status="PENDING",
    )
    db.session.add(request_row)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Application id collision on %s: %s", application_id, exc.orig)
        realign_sequence(region_code, sub_region_code)
        db.session.commit()
        raise ConflictError(
            "SketchRequest", "application_id", application_id,
            code=E.APPLICATION_ID_COLLISION,
            message="Could not create sketch request: application id already in use, please retry",
        ) from exc

    logger.info("Sketch request created id=%s application_id=%s submitter=%s",
                request_row.id, request_row.application_id, actor.id,
                extra={"sketch_request_id": request_row.id,
                       "application_id": request_row.application_id})
    notification_service.notify(
        "sketch_request.created",
        sketch_request_id=request_row.id,
        submitter_id=actor.id,
        application_id=request_row.application_id,
    )
    return request_row


# ── Read ─────────────────────────────────────────────────────────────────────


def _load(request_id) -> SketchRequest:
    try:
        pk = int(request_id)
    except (TypeError, ValueError):
        raise NotFoundError("SketchRequest", request_id) from None
    row = db.session.get(SketchRequest, pk)
    if row is None:
        raise NotFoundError("SketchRequest", request_id)
    return row


def get_by_id(actor: Actor, request_id) -> SketchRequest:
    """Administrators read any request; surveyors only their own."""
    row = _load(request_id)
    if actor.is_admin:
        return row
    if actor.is_surveyor:
        if str(row.submitter_id) != str(actor.id):
            raise ForbiddenError("You can only view your own sketch requests")
        return row
    raise ForbiddenError("Insufficient permissions")


def _active_request_ids_for_center(center_id):
    try:
        pk = int(center_id)
    except (TypeError, ValueError):
        raise ValidationError("drafting_center_id must be an integer id",
                              details={"drafting_center_id": "Invalid id"}) from None
    return select(Assignment.sketch_request_id).where(
        Assignment.drafting_center_id == pk,
        Assignment.status.in_(ACTIVE_STATUSES),
    )


def _status_filter(value) -> str | None:
    status = clean_str(value)
    if not status:
        return None
    status = status.upper()
    if status not in SKETCH_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(SKETCH_STATUSES))}",
            details={"status": "Invalid value"},
        )
    return status


def list_requests(actor: Actor, filters: dict, page: int, limit: int) -> tuple[list, int]:
    """Newest first.

    Surveyors are pinned to their own requests. Administrators may filter by
    ``submitter_id``, ``status`` and ``drafting_center_id`` (requests with a
    non-cancelled assignment at that center).
    """
    stmt = select(SketchRequest)
    if actor.is_surveyor:
        stmt = stmt.where(SketchRequest.submitter_id == actor.id)
    elif actor.is_admin:
        submitter = clean_str(filters.get("submitter_id"))
        if submitter:
            stmt = stmt.where(SketchRequest.submitter_id == submitter)
        if clean_str(filters.get("drafting_center_id")):
            stmt = stmt.where(SketchRequest.id.in_(
                _active_request_ids_for_center(filters["drafting_center_id"])
            ))
    else:
        raise ForbiddenError("Insufficient permissions")

    status = _status_filter(filters.get("status"))
    if status:
        stmt = stmt.where(SketchRequest.status == status)

    stmt = stmt.order_by(SketchRequest.created_at.desc(), SketchRequest.id.desc())
    return paginate_select(stmt, page, limit)


def active_assignment_for(request_id: int) -> Assignment | None:
    return db.session.execute(
        select(Assignment).where(
            Assignment.sketch_request_id == request_id,
            Assignment.status.in_(ACTIVE_STATUSES),
        )
    ).unique().scalar_one_or_none()


def list_all_with_assignment(actor: Actor, filters: dict, page: int, limit: int):
    """Administrator overview: every request with its current assignment.

    Returns:
        ([(SketchRequest, Assignment | None), ...], total), newest first.
        The current assignment is the non-cancelled one, if any.
    """
    if not actor.is_admin:
        raise ForbiddenError("Only administrators can view all sketch requests")

    stmt = select(SketchRequest)
    status = _status_filter(filters.get("status"))
    if status:
        stmt = stmt.where(SketchRequest.status == status)
    stmt = stmt.order_by(SketchRequest.created_at.desc(), SketchRequest.id.desc())
    rows, total = paginate_select(stmt, page, limit)

    by_request = {}
    if rows:
        assignments = db.session.execute(
            select(Assignment).where(
                Assignment.sketch_request_id.in_([r.id for r in rows]),
                Assignment.status.in_(ACTIVE_STATUSES),
            )
        ).unique().scalars().all()
        by_request = {a.sketch_request_id: a for a in assignments}

    return [(row, by_request.get(row.id)) for row in rows], total


# ── Reconciliation ───────────────────────────────────────────────────────────


def derive_status(row: SketchRequest) -> str:
    """Status implied by the live assignment for assignment-driven states."""
    if row.status not in _ASSIGNMENT_DRIVEN:
        return row.status
    return "ASSIGNED" if active_assignment_for(row.id) is not None else "PENDING"


def reconcile_status(actor: Actor, request_id) -> tuple[SketchRequest, bool]:
    """Re-derive a request's status from its assignments.

    Idempotent. Only PENDING / ASSIGNED are touched; review states are
    owned by the review step.

    Returns:
        (request, changed)
    """
    if not actor.is_admin:
        raise ForbiddenError("Only administrators can reconcile sketch requests")
    row = _load(request_id)
    expected = derive_status(row)
    if expected == row.status:
        return row, False

    old = row.status
    row.status = expected
    db.session.commit()
    logger.warning("Sketch request %s status reconciled: %s → %s", row.id, old, expected)
    return row, True


def reconcile_all() -> int:
    """Reconcile every PENDING / ASSIGNED request; returns how many changed.

    Maintenance entry point for rows written before request and assignment
    updates shared a transaction.
    """
    rows = db.session.execute(
        select(SketchRequest)
        .where(SketchRequest.status.in_(_ASSIGNMENT_DRIVEN))
        .order_by(SketchRequest.id)
    ).scalars().all()
    changed = 0
    for row in rows:
        expected = derive_status(row)
        if expected != row.status:
            logger.warning("Sketch request %s status reconciled: %s → %s",
                           row.id, row.status, expected)
            row.status = expected
            changed += 1
    if changed:
        db.session.commit()
    return changed
