"""
Hierarchy chain validation.

``validate_chain`` checks that a set of declared location ids forms one
unbroken Region → SubRegion → SubDistrict → Settlement chain. It is a pure
read: nothing is written and nothing is committed.

Checks run top-down. Each level is fetched (missing → NotFoundError naming
the level), then its stored parent reference is compared with the id the
caller declared for the parent level. Ids are compared as canonical strings
so "7" and 7 are the same reference.

Used by:
    - hierarchy_service when creating SubDistricts and Settlements
    - sketch_request_service before a request is persisted
"""

from __future__ import annotations

import logging

from sketchflow.core.exceptions import HierarchyMismatchError, NotFoundError, ValidationError
from sketchflow.models import db
from sketchflow.models.hierarchy import LEVEL_MODELS, LEVELS, PARENT_OF

logger = logging.getLogger(__name__)


def canonical_id(value) -> str | None:
    """Normalise an id for comparison ("  7 " / 7 / "7" → "7")."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_pk(level: str, value) -> int:
    try:
        return int(canonical_id(value))
    except (TypeError, ValueError):
        # Not a well-formed id, so it cannot name an existing row
        raise NotFoundError(level, value) from None


def fetch_level(level: str, entity_id):
    """Load one hierarchy entity or raise NotFoundError(level)."""
    model = LEVEL_MODELS[level]
    entity = db.session.get(model, _to_pk(level, entity_id))
    if entity is None:
        raise NotFoundError(level, entity_id)
    return entity


def validate_chain(region_id, sub_region_id=None, sub_district_id=None, settlement_id=None) -> dict:
    """Verify that the declared ids form one chain.

    Levels may be left off from the bottom (e.g. region + sub-region only)
    but not skipped in the middle.

    Returns:
        {level name: entity} for every validated level, top-down.

    Raises:
        NotFoundError: a declared entity does not exist.
        HierarchyMismatchError: a stored parent differs from the declared one.
        ValidationError: a middle level is missing while a lower one is given.
    """
    declared = dict(zip(LEVELS, (region_id, sub_region_id, sub_district_id, settlement_id)))

    depth = 0
    for i, level in enumerate(LEVELS):
        if canonical_id(declared[level]) is not None:
            depth = i + 1
    if depth == 0:
        raise ValidationError("region_id is required", details={"region_id": "Required"})
    for level in LEVELS[:depth]:
        if canonical_id(declared[level]) is None:
            raise ValidationError(
                f"{level} id is required when a lower level is given",
                details={level: "Required"},
            )

    resolved = {}
    for level in LEVELS[:depth]:
        entity = fetch_level(level, declared[level])
        if level in PARENT_OF:
            parent_level, fk_attr = PARENT_OF[level]
            if canonical_id(getattr(entity, fk_attr)) != canonical_id(declared[parent_level]):
                logger.info(
                    "Hierarchy mismatch: %s id=%s has %s=%s, declared %s",
                    level, entity.id, fk_attr, getattr(entity, fk_attr), declared[parent_level],
                )
                raise HierarchyMismatchError(level, parent_level)
        resolved[level] = entity
    return resolved
