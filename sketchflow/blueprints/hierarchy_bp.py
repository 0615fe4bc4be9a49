"""
Hierarchy Master Data Blueprint.

Endpoints (all under /api/v1/masters):
    Region:       GET/POST /regions,       GET/PATCH /regions/<id>
    SubRegion:    GET/POST /sub-regions,   GET/PATCH /sub-regions/<id>
                  GET /regions/<id>/sub-regions
    SubDistrict:  GET/POST /sub-districts, GET/PATCH /sub-districts/<id>
                  GET /sub-regions/<id>/sub-districts
    Settlement:   GET/POST /settlements,   GET/PATCH /settlements/<id>
                  GET /sub-districts/<id>/settlements
    Chain check:  POST /validate-chain

Layer contract:
    - No ORM calls here — all DB work delegated to hierarchy_service.
    - Writes require an administrator; reads any authenticated actor.
"""

import logging

from flask import Blueprint, jsonify, request

from sketchflow.auth import ADMIN_ROLES
from sketchflow.blueprints import list_response
from sketchflow.middleware.permission_required import require_actor, require_roles
from sketchflow.services import hierarchy_service
from sketchflow.services.hierarchy_validator import validate_chain
from sketchflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

hierarchy_bp = Blueprint("hierarchy", __name__, url_prefix="/api/v1/masters")

# URL segment → level name
_SEGMENTS = {
    "regions": "Region",
    "sub-regions": "SubRegion",
    "sub-districts": "SubDistrict",
    "settlements": "Settlement",
}
_SEGMENT_PATTERN = "<any('regions', 'sub-regions', 'sub-districts', 'settlements'):segment>"


# ── Generic level routes ─────────────────────────────────────────────────────


@hierarchy_bp.route(f"/{_SEGMENT_PATTERN}", methods=["POST"])
@require_roles(*ADMIN_ROLES)
def create_entity(segment):
    level = _SEGMENTS[segment]
    data = request.get_json(silent=True) or {}
    entity = hierarchy_service.CREATORS[level](data)
    return jsonify(entity.to_dict()), 201


@hierarchy_bp.route(f"/{_SEGMENT_PATTERN}", methods=["GET"])
@require_actor
def list_level(segment):
    """List one level. Query: status, region_id, sub_region_id, sub_district_id, page, limit."""
    return list_response(hierarchy_service.list_entities, _SEGMENTS[segment])


@hierarchy_bp.route(f"/{_SEGMENT_PATTERN}/<entity_id>", methods=["GET"])
@require_actor
def get_entity(segment, entity_id):
    entity = hierarchy_service.get_entity(_SEGMENTS[segment], entity_id)
    return jsonify(entity.to_dict())


@hierarchy_bp.route(f"/{_SEGMENT_PATTERN}/<entity_id>", methods=["PATCH"])
@require_roles(*ADMIN_ROLES)
def update_entity(segment, entity_id):
    data = request.get_json(silent=True) or {}
    entity = hierarchy_service.update_entity(_SEGMENTS[segment], entity_id, data)
    return jsonify(entity.to_dict())


# ── Children by parent ───────────────────────────────────────────────────────


@hierarchy_bp.route("/regions/<parent_id>/sub-regions", methods=["GET"])
@require_actor
def list_sub_regions_of_region(parent_id):
    return list_response(hierarchy_service.list_children, "SubRegion", parent_id)


@hierarchy_bp.route("/sub-regions/<parent_id>/sub-districts", methods=["GET"])
@require_actor
def list_sub_districts_of_sub_region(parent_id):
    return list_response(hierarchy_service.list_children, "SubDistrict", parent_id)


@hierarchy_bp.route("/sub-districts/<parent_id>/settlements", methods=["GET"])
@require_actor
def list_settlements_of_sub_district(parent_id):
    return list_response(hierarchy_service.list_children, "Settlement", parent_id)


# ── Chain validation ─────────────────────────────────────────────────────────


@hierarchy_bp.route("/validate-chain", methods=["POST"])
@require_actor
def validate_location_chain():
    """Check a declared location chain without writing anything.

    Body: region_id (required), sub_region_id, sub_district_id, settlement_id.
    """
    data = request.get_json(silent=True) or {}
    if data.get("region_id") in (None, ""):
        return api_error(E.VALIDATION_REQUIRED, "region_id is required",
                         details={"region_id": "Required"})
    chain = validate_chain(
        data.get("region_id"),
        data.get("sub_region_id"),
        data.get("sub_district_id"),
        data.get("settlement_id"),
    )
    return jsonify({
        "valid": True,
        "chain": {level: entity.to_dict() for level, entity in chain.items()},
    })
