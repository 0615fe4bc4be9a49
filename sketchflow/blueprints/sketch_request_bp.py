"""
Sketch Request Blueprint.

Endpoints:
    POST /api/v1/sketch-requests                          — surveyor submits
    GET  /api/v1/sketch-requests                          — own (surveyor) / all (admin)
    GET  /api/v1/sketch-requests/with-assignments         — admin overview
    GET  /api/v1/sketch-requests/<id>                     — single request
    POST /api/v1/sketch-requests/<id>/reconcile-status    — admin repair

Layer contract:
    - No ORM calls here — all DB work delegated to sketch_request_service.
    - The actor is passed to the service explicitly.
"""

import logging

from flask import Blueprint, g, jsonify, request

from sketchflow.auth import ADMIN_ROLES, SURVEYOR
from sketchflow.blueprints import list_response
from sketchflow.middleware.permission_required import require_actor, require_roles
from sketchflow.services import sketch_request_service
from sketchflow.utils.helpers import page_payload, parse_pagination

logger = logging.getLogger(__name__)

sketch_request_bp = Blueprint("sketch_request", __name__, url_prefix="/api/v1/sketch-requests")


@sketch_request_bp.route("", methods=["POST"])
@require_roles(SURVEYOR)
def create_sketch_request():
    data = request.get_json(silent=True) or {}
    row = sketch_request_service.create(g.actor, data)
    return jsonify(row.to_dict()), 201


@sketch_request_bp.route("", methods=["GET"])
@require_actor
def list_sketch_requests():
    """Query: status, submitter_id (admin), drafting_center_id (admin), page, limit."""
    return list_response(sketch_request_service.list_requests, g.actor)


@sketch_request_bp.route("/with-assignments", methods=["GET"])
@require_roles(*ADMIN_ROLES)
def list_with_assignments():
    page, limit = parse_pagination(request.args)
    pairs, total = sketch_request_service.list_all_with_assignment(
        g.actor, request.args.to_dict(), page, limit,
    )
    items = []
    for row, assignment in pairs:
        item = row.to_dict()
        item["current_assignment"] = assignment.to_dict() if assignment else None
        items.append(item)
    return jsonify(page_payload(items, total, page, limit))


@sketch_request_bp.route("/<request_id>", methods=["GET"])
@require_actor
def get_sketch_request(request_id):
    return jsonify(sketch_request_service.get_by_id(g.actor, request_id).to_dict())


@sketch_request_bp.route("/<request_id>/reconcile-status", methods=["POST"])
@require_roles(*ADMIN_ROLES)
def reconcile_sketch_request(request_id):
    row, changed = sketch_request_service.reconcile_status(g.actor, request_id)
    return jsonify({"sketch_request": row.to_dict(), "changed": changed})
