"""
Hierarchy Store — service layer for Region / SubRegion / SubDistrict / Settlement.

Business logic for:
    - Creation with parent resolution (by id, or by case-insensitive name
      scoped to the nearest known ancestor)
    - Chain validation for SubDistrict and Settlement (see hierarchy_validator)
    - (parent, code) uniqueness, surfaced as ConflictError(DUPLICATE_CODE)
    - Partial updates of code / name / status
    - Paginated listing, globally or by parent

Rules:
  - db.session.commit() happens only in service modules.
  - Entities are never deleted; ``status = INACTIVE`` retires them.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from sketchflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from sketchflow.models import db
from sketchflow.models.hierarchy import (
    LEVEL_MODELS,
    MASTER_STATUSES,
    PARENT_OF,
    Region,
    Settlement,
    SubDistrict,
    SubRegion,
)
from sketchflow.services.hierarchy_validator import fetch_level, validate_chain
from sketchflow.utils.errors import E
from sketchflow.utils.helpers import bounded_str, clean_str, paginate_select

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("code", "name", "status")

# Declared-id column → level name
_ID_FIELDS = {
    "Region": "region_id",
    "SubRegion": "sub_region_id",
    "SubDistrict": "sub_district_id",
    "Settlement": "settlement_id",
}

# Name-based parent lookup inputs
_NAME_FIELDS = {
    "Region": "region_name",
    "SubRegion": "sub_region_name",
    "SubDistrict": "sub_district_name",
}


# ── Name lookup ──────────────────────────────────────────────────────────────


def find_by_name(level: str, name: str, **scope):
    """Case-insensitive exact match on the trimmed name.

    Args:
        level: Hierarchy level name.
        name:  Name to look up.
        scope: Optional ancestor filters, e.g. ``region_id=3``; None values
               are ignored.

    Raises:
        NotFoundError: zero matches, or more than one (ambiguous).
    """
    model = LEVEL_MODELS[level]
    wanted = (name or "").strip().lower()
    if not wanted:
        raise NotFoundError(level, message=f"{level} name is required")

    stmt = select(model).where(func.lower(func.trim(model.name)) == wanted)
    for column, value in scope.items():
        if value is not None:
            stmt = stmt.where(getattr(model, column) == value)
    matches = db.session.execute(stmt.limit(2)).scalars().all()

    if not matches:
        raise NotFoundError(level, message=f"{level} not found: {name.strip()}")
    if len(matches) > 1:
        logger.info("Ambiguous %s name lookup %r scope=%s", level, name, scope)
        raise NotFoundError(level, message=f"{level} name is ambiguous: {name.strip()}")
    return matches[0]


def _resolve_parent(level: str, data: dict, scope: dict | None = None):
    """Return the parent entity of a new ``level`` row from id or name input."""
    parent_level, _ = PARENT_OF[level]
    parent_id = data.get(_ID_FIELDS[parent_level])
    if parent_id not in (None, ""):
        return fetch_level(parent_level, parent_id)

    parent_name = clean_str(data.get(_NAME_FIELDS[parent_level]))
    if parent_name:
        return find_by_name(parent_level, parent_name, **(scope or {}))

    raise ValidationError(
        f"{_ID_FIELDS[parent_level]} or {_NAME_FIELDS[parent_level]} is required",
        details={_ID_FIELDS[parent_level]: "Required"},
        code=E.VALIDATION_REQUIRED,
    )


def _ancestor_scope(data: dict, level: str) -> dict:
    """Resolve the ancestor used to scope a name lookup for ``level``'s parent."""
    if level == "SubDistrict":
        region = _optional_region(data)
        return {"region_id": region.id if region else None}
    if level == "Settlement":
        region = _optional_region(data)
        sub_region = None
        if data.get("sub_region_id") not in (None, ""):
            sub_region = fetch_level("SubRegion", data["sub_region_id"])
        elif clean_str(data.get("sub_region_name")):
            sub_region = find_by_name(
                "SubRegion", data["sub_region_name"],
                region_id=region.id if region else None,
            )
        return {"sub_region_id": sub_region.id if sub_region else None}
    return {}


def _optional_region(data: dict):
    if data.get("region_id") not in (None, ""):
        return fetch_level("Region", data["region_id"])
    if clean_str(data.get("region_name")):
        return find_by_name("Region", data["region_name"])
    return None


# ── Field validation ─────────────────────────────────────────────────────────


# Column widths of code / name on every level
_LIMITS = {"code": 50, "name": 200}

# Application ids join codes with "/", so a code containing it could make
# two scopes share one id prefix
_CODE_FORBIDDEN = "/"


def _validate_core_fields(data: dict, *, partial: bool = False) -> dict:
    out = {}
    for field in ("code", "name"):
        if field in data or not partial:
            value = bounded_str(data.get(field), field, _LIMITS[field])
            if not value:
                raise ValidationError(
                    f"{field} is required and must be non-empty",
                    details={field: "Required"},
                    code=E.VALIDATION_REQUIRED,
                )
            if field == "code" and _CODE_FORBIDDEN in value:
                raise ValidationError(
                    f"code must not contain '{_CODE_FORBIDDEN}'",
                    details={"code": "Invalid character"},
                )
            out[field] = value
    if "status" in data or not partial:
        status = (clean_str(data.get("status")) or "ACTIVE").upper()
        if status not in MASTER_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(MASTER_STATUSES))}",
                details={"status": "Invalid value"},
            )
        out["status"] = status
    return out


def _commit_or_conflict(level: str, entity, scope_label: str):
    """Commit, translating a uniqueness violation into ConflictError."""
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.info("Duplicate %s code=%s (%s): %s", level, entity.code, scope_label, exc.orig)
        raise ConflictError(
            level, "code", entity.code,
            code=E.DUPLICATE_CODE,
            message=f"{level} with this code already exists in this {scope_label}",
        ) from exc


def _check_code_free(model, code: str, scope_col: str | None, scope_val, level: str,
                     scope_label: str, exclude_id: int | None = None):
    stmt = select(model.id).where(model.code == code)
    if scope_col:
        stmt = stmt.where(getattr(model, scope_col) == scope_val)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if db.session.execute(stmt.limit(1)).first() is not None:
        raise ConflictError(
            level, "code", code,
            code=E.DUPLICATE_CODE,
            message=f"{level} with this code already exists in this {scope_label}",
        )


# ── Create ───────────────────────────────────────────────────────────────────


def create_region(data: dict) -> Region:
    fields = _validate_core_fields(data)
    _check_code_free(Region, fields["code"], None, None, "Region", "platform")
    region = Region(**fields)
    db.session.add(region)
    _commit_or_conflict("Region", region, "platform")
    logger.info("Region created id=%s code=%s", region.id, region.code)
    return region


def create_sub_region(data: dict) -> SubRegion:
    fields = _validate_core_fields(data)
    region = _resolve_parent("SubRegion", data)
    _check_code_free(SubRegion, fields["code"], "region_id", region.id, "SubRegion", "region")
    sub_region = SubRegion(region_id=region.id, **fields)
    db.session.add(sub_region)
    _commit_or_conflict("SubRegion", sub_region, "region")
    logger.info("SubRegion created id=%s code=%s region=%s",
                sub_region.id, sub_region.code, region.id)
    return sub_region


def create_sub_district(data: dict) -> SubDistrict:
    """Create a SubDistrict; region_id is copied from the parent SubRegion.

    A declared region_id (or region_name) must match the SubRegion's region.
    """
    fields = _validate_core_fields(data)
    sub_region = _resolve_parent("SubDistrict", data, _ancestor_scope(data, "SubDistrict"))

    declared_region = data.get("region_id")
    if declared_region in (None, "") and clean_str(data.get("region_name")):
        declared_region = find_by_name("Region", data["region_name"]).id
    if declared_region in (None, ""):
        declared_region = sub_region.region_id
    validate_chain(declared_region, sub_region.id)

    _check_code_free(SubDistrict, fields["code"], "sub_region_id", sub_region.id,
                     "SubDistrict", "sub-region")
    sub_district = SubDistrict(
        region_id=sub_region.region_id,
        sub_region_id=sub_region.id,
        **fields,
    )
    db.session.add(sub_district)
    _commit_or_conflict("SubDistrict", sub_district, "sub-region")
    logger.info("SubDistrict created id=%s code=%s sub_region=%s",
                sub_district.id, sub_district.code, sub_region.id)
    return sub_district


def create_settlement(data: dict) -> Settlement:
    """Create a Settlement under its SubDistrict.

    Ancestor ids not supplied are taken from the SubDistrict; supplied ones
    must form one chain with it.
    """
    fields = _validate_core_fields(data)
    scope = _ancestor_scope(data, "Settlement")
    sub_district = _resolve_parent("Settlement", data, scope)

    region_id = data.get("region_id")
    if region_id in (None, "") and clean_str(data.get("region_name")):
        region_id = find_by_name("Region", data["region_name"]).id
    sub_region_id = data.get("sub_region_id")
    if sub_region_id in (None, "") and scope.get("sub_region_id") is not None:
        sub_region_id = scope["sub_region_id"]
    if sub_region_id in (None, ""):
        sub_region_id = sub_district.sub_region_id
    if region_id in (None, ""):
        region_id = fetch_level("SubRegion", sub_region_id).region_id
    chain = validate_chain(region_id, sub_region_id, sub_district.id)

    _check_code_free(Settlement, fields["code"], "sub_district_id", sub_district.id,
                     "Settlement", "sub-district")
    settlement = Settlement(
        region_id=chain["Region"].id,
        sub_region_id=chain["SubRegion"].id,
        sub_district_id=sub_district.id,
        **fields,
    )
    db.session.add(settlement)
    _commit_or_conflict("Settlement", settlement, "sub-district")
    logger.info("Settlement created id=%s code=%s sub_district=%s",
                settlement.id, settlement.code, sub_district.id)
    return settlement


CREATORS = {
    "Region": create_region,
    "SubRegion": create_sub_region,
    "SubDistrict": create_sub_district,
    "Settlement": create_settlement,
}


# ── Read ─────────────────────────────────────────────────────────────────────


def get_entity(level: str, entity_id):
    return fetch_level(level, entity_id)


def list_entities(level: str, filters: dict, page: int, limit: int) -> tuple[list, int]:
    """List one level, sorted by name.

    Filters: ``status`` plus any ancestor id column of the level
    (e.g. ``region_id`` for SubDistrict).
    """
    model = LEVEL_MODELS[level]
    stmt = select(model)
    status = clean_str(filters.get("status"))
    if status:
        status = status.upper()
        if status not in MASTER_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(MASTER_STATUSES))}",
                details={"status": "Invalid value"},
            )
        stmt = stmt.where(model.status == status)
    for column in ("region_id", "sub_region_id", "sub_district_id"):
        value = filters.get(column)
        if value not in (None, "") and hasattr(model, column):
            try:
                stmt = stmt.where(getattr(model, column) == int(value))
            except (TypeError, ValueError):
                raise ValidationError(f"{column} must be an integer id",
                                      details={column: "Invalid id"}) from None
    stmt = stmt.order_by(model.name.asc(), model.id.asc())
    return paginate_select(stmt, page, limit)


def list_children(level: str, parent_id, filters: dict, page: int, limit: int) -> tuple[list, int]:
    """List rows of ``level`` under an existing parent (parent must exist)."""
    parent_level, fk_attr = PARENT_OF[level]
    parent = fetch_level(parent_level, parent_id)
    return list_entities(level, {**filters, fk_attr: parent.id}, page, limit)


# ── Update ───────────────────────────────────────────────────────────────────


_SCOPE_LABELS = {
    "Region": (None, "platform"),
    "SubRegion": ("region_id", "region"),
    "SubDistrict": ("sub_region_id", "sub-region"),
    "Settlement": ("sub_district_id", "sub-district"),
}


def update_entity(level: str, entity_id, data: dict):
    """Partial update of code / name / status. Parent links are immutable."""
    unknown = sorted(set(data) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError(
            f"Only {', '.join(UPDATABLE_FIELDS)} can be updated",
            details={field: "Not updatable" for field in unknown},
        )
    if not any(field in data for field in UPDATABLE_FIELDS):
        raise ValidationError(
            "At least one of code, name, status is required",
            code=E.VALIDATION_REQUIRED,
        )

    entity = fetch_level(level, entity_id)
    fields = _validate_core_fields(data, partial=True)
    scope_col, scope_label = _SCOPE_LABELS[level]
    if "code" in fields and fields["code"] != entity.code:
        _check_code_free(
            LEVEL_MODELS[level], fields["code"], scope_col,
            getattr(entity, scope_col) if scope_col else None,
            level, scope_label, exclude_id=entity.id,
        )
    for key, value in fields.items():
        setattr(entity, key, value)
    _commit_or_conflict(level, entity, scope_label)
    logger.info("%s updated id=%s fields=%s", level, entity.id, sorted(fields))
    return entity
