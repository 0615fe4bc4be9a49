"""
Drafting Center Directory Blueprint.

Endpoints (all under /api/v1/masters):
    GET/POST          /drafting-centers
    GET/PATCH/DELETE  /drafting-centers/<id>
    GET               /drafting-centers/<id>/assignments
    GET               /drafting-centers/<id>/assignment-counts

Directory writes require an administrator. Assignment views are open to
administrators and to operators of that center.
"""

import logging

from flask import Blueprint, g, jsonify, request

from sketchflow.auth import ADMIN_ROLES, DRAFT_CENTER_OPERATOR
from sketchflow.blueprints import list_response
from sketchflow.middleware.permission_required import require_actor, require_roles
from sketchflow.services import assignment_service, drafting_center_service
from sketchflow.utils.helpers import page_payload, parse_pagination

logger = logging.getLogger(__name__)

drafting_center_bp = Blueprint("drafting_center", __name__, url_prefix="/api/v1/masters")


@drafting_center_bp.route("/drafting-centers", methods=["POST"])
@require_roles(*ADMIN_ROLES)
def create_center():
    data = request.get_json(silent=True) or {}
    center = drafting_center_service.create(data, created_by_id=g.actor.id)
    return jsonify(center.to_dict()), 201


@drafting_center_bp.route("/drafting-centers", methods=["GET"])
@require_actor
def list_centers():
    """List live centers. Query: status, availability, page, limit."""
    return list_response(drafting_center_service.list_centers)


@drafting_center_bp.route("/drafting-centers/<center_id>", methods=["GET"])
@require_actor
def get_center(center_id):
    return jsonify(drafting_center_service.get_by_id(center_id).to_dict())


@drafting_center_bp.route("/drafting-centers/<center_id>", methods=["PATCH"])
@require_roles(*ADMIN_ROLES)
def update_center(center_id):
    data = request.get_json(silent=True) or {}
    return jsonify(drafting_center_service.update(center_id, data).to_dict())


@drafting_center_bp.route("/drafting-centers/<center_id>", methods=["DELETE"])
@require_roles(*ADMIN_ROLES)
def delete_center(center_id):
    center = drafting_center_service.soft_delete(center_id)
    return jsonify({"deleted": True, "id": center.id})


# ── Assignment views ─────────────────────────────────────────────────────────


@drafting_center_bp.route("/drafting-centers/<center_id>/assignments", methods=["GET"])
@require_roles(*ADMIN_ROLES, DRAFT_CENTER_OPERATOR)
def list_center_assignments(center_id):
    """Center work queue, newest first. CANCELLED only when ?status=CANCELLED."""
    page, limit = parse_pagination(request.args)
    items, total = assignment_service.list_by_center(
        g.actor, center_id, request.args.to_dict(), page, limit,
    )
    return jsonify(page_payload(
        [a.to_dict(include_request=True) for a in items], total, page, limit,
    ))


@drafting_center_bp.route("/drafting-centers/<center_id>/assignment-counts", methods=["GET"])
@require_roles(*ADMIN_ROLES, DRAFT_CENTER_OPERATOR)
def center_assignment_counts(center_id):
    return jsonify(assignment_service.counts_by_center(g.actor, center_id))
