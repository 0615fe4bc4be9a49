"""
Drafting Center Directory — service layer.

Operations: create, get_by_id, list_centers, update, soft_delete.

Normalisation:
    - code trimmed and upper-cased; optional, unique when present
    - contact.email lower-cased
    - address.country defaults to "India"
Required on create: name, address.city, address.pincode, and at least
one of contact.email / contact.phone.

Soft-deleted centers are invisible to every read and to the assignment
workflow.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from sketchflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from sketchflow.models import db
from sketchflow.models.drafting_center import (
    CENTER_AVAILABILITY,
    CENTER_STATUSES,
    DEFAULT_COUNTRY,
    DraftingCenter,
)
from sketchflow.utils.errors import E
from sketchflow.utils.helpers import bounded_str, clean_str, paginate_select

logger = logging.getLogger(__name__)

_ADDRESS_FIELDS = ("street", "city", "state", "pincode", "country")
_CONTACT_FIELDS = {"email": "contact_email", "phone": "contact_phone",
                   "alternate_phone": "contact_alternate_phone"}
_SCALAR_FIELDS = ("name", "code", "description", "status", "availability", "capacity")

_LIMITS = {
    "name": 200, "code": 50, "description": 1000,
    "street": 200, "city": 100, "state": 100, "pincode": 10, "country": 100,
    "email": 150, "phone": 20, "alternate_phone": 20,
}


# ── Normalisation ────────────────────────────────────────────────────────────


def _bounded(field: str, value):
    return bounded_str(value, field, _LIMITS[field])


def _enum(field: str, value, allowed: set[str]) -> str:
    text = (clean_str(value) or "").upper()
    if text not in allowed:
        raise ValidationError(
            f"{field} must be one of: {', '.join(sorted(allowed))}",
            details={field: "Invalid value"},
        )
    return text


def _capacity(value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("capacity must be a non-negative integer",
                              details={"capacity": "Invalid value"})
    try:
        capacity = int(value)
    except (TypeError, ValueError):
        raise ValidationError("capacity must be a non-negative integer",
                              details={"capacity": "Invalid value"}) from None
    if capacity < 0:
        raise ValidationError("capacity must be a non-negative integer",
                              details={"capacity": "Must be >= 0"})
    return capacity


def _normalise_scalars(data: dict) -> dict:
    out = {}
    if "name" in data:
        out["name"] = _bounded("name", data.get("name"))
    if "code" in data:
        code = _bounded("code", data.get("code"))
        out["code"] = code.upper() if code else None
    if "description" in data:
        out["description"] = _bounded("description", data.get("description"))
    if "status" in data:
        out["status"] = _enum("status", data.get("status"), CENTER_STATUSES)
    if "availability" in data:
        out["availability"] = _enum("availability", data.get("availability"), CENTER_AVAILABILITY)
    if "capacity" in data:
        out["capacity"] = _capacity(data.get("capacity"))
    return out


def _normalise_address(address) -> dict:
    if address is None:
        return {}
    if not isinstance(address, dict):
        raise ValidationError("address must be an object", details={"address": "Invalid value"})
    return {
        f"address_{field}": _bounded(field, address.get(field))
        for field in _ADDRESS_FIELDS if field in address
    }


def _normalise_contact(contact) -> dict:
    if contact is None:
        return {}
    if not isinstance(contact, dict):
        raise ValidationError("contact must be an object", details={"contact": "Invalid value"})
    out = {}
    for field, column in _CONTACT_FIELDS.items():
        if field in contact:
            value = _bounded(field, contact.get(field))
            out[column] = value.lower() if (field == "email" and value) else value
    return out


def _require_complete(center: DraftingCenter):
    if not center.name:
        raise ValidationError("name is required and must be non-empty",
                              details={"name": "Required"}, code=E.VALIDATION_REQUIRED)
    if not center.address_city:
        raise ValidationError("address.city is required",
                              details={"address.city": "Required"}, code=E.VALIDATION_REQUIRED)
    if not center.address_pincode:
        raise ValidationError("address.pincode is required",
                              details={"address.pincode": "Required"}, code=E.VALIDATION_REQUIRED)
    if not center.contact_email and not center.contact_phone:
        raise ValidationError(
            "contact is required: provide at least contact.email or contact.phone",
            details={"contact": "Required"}, code=E.VALIDATION_REQUIRED,
        )


def _commit(center: DraftingCenter):
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.info("Drafting center code conflict code=%s: %s", center.code, exc.orig)
        raise ConflictError(
            "DraftingCenter", "code", center.code,
            code=E.DUPLICATE_CODE,
            message="Drafting center with this code already exists",
        ) from exc


# ── Operations ───────────────────────────────────────────────────────────────


def create(data: dict, created_by_id: str | None = None) -> DraftingCenter:
    """Create a drafting center. Soft-deleted codes stay reserved."""
    center = DraftingCenter(
        status="ACTIVE",
        availability="AVAILABLE",
        address_country=DEFAULT_COUNTRY,
        created_by_id=created_by_id,
    )
    fields = _normalise_scalars(data)
    fields.update(_normalise_address(data.get("address")))
    fields.update(_normalise_contact(data.get("contact")))
    for key, value in fields.items():
        setattr(center, key, value)
    if not center.address_country:
        center.address_country = DEFAULT_COUNTRY
    _require_complete(center)

    db.session.add(center)
    _commit(center)
    logger.info("Drafting center created id=%s code=%s by=%s", center.id, center.code, created_by_id)
    return center


def get_by_id(center_id) -> DraftingCenter:
    """Live center or NotFoundError (soft-deleted counts as missing)."""
    try:
        pk = int(center_id)
    except (TypeError, ValueError):
        raise NotFoundError("DraftingCenter", center_id) from None
    center = DraftingCenter.get_active(pk)
    if center is None:
        raise NotFoundError("DraftingCenter", center_id)
    return center


def list_centers(filters: dict, page: int, limit: int) -> tuple[list, int]:
    """Live centers sorted by name; optional status / availability filters."""
    stmt = DraftingCenter.select_active()
    if clean_str(filters.get("status")):
        stmt = stmt.where(DraftingCenter.status == _enum("status", filters["status"], CENTER_STATUSES))
    if clean_str(filters.get("availability")):
        stmt = stmt.where(DraftingCenter.availability == _enum(
            "availability", filters["availability"], CENTER_AVAILABILITY))
    stmt = stmt.order_by(DraftingCenter.name.asc(), DraftingCenter.id.asc())
    return paginate_select(stmt, page, limit)


def update(center_id, data: dict) -> DraftingCenter:
    """Partial update; address and contact are merged field by field."""
    center = get_by_id(center_id)
    known = set(_SCALAR_FIELDS) | {"address", "contact"}
    if not known & set(data):
        raise ValidationError(
            "No updatable fields supplied",
            details={"allowed": sorted(known)},
            code=E.VALIDATION_REQUIRED,
        )

    fields = _normalise_scalars(data)
    fields.update(_normalise_address(data.get("address")))
    fields.update(_normalise_contact(data.get("contact")))
    for key, value in fields.items():
        setattr(center, key, value)
    _require_complete(center)

    _commit(center)
    logger.info("Drafting center updated id=%s fields=%s", center.id, sorted(fields))
    return center


def soft_delete(center_id) -> DraftingCenter:
    center = get_by_id(center_id)
    center.soft_delete()
    db.session.commit()
    logger.info("Drafting center soft-deleted id=%s", center.id)
    return center
