"""
Assignment Blueprint.

Endpoints:
    POST  /api/v1/assignments                 — admin assigns a request to a center
    GET   /api/v1/assignments                 — admin list (filters)
    GET   /api/v1/assignments/mine            — operator's center queue
    GET   /api/v1/assignments/<id>            — admin or operator of the center
    PATCH /api/v1/assignments/<id>            — admin status / due_date / notes
    POST  /api/v1/assignments/<id>/respond    — operator accept / reject

State rules live in assignment_service; this module only maps HTTP.
"""

import logging

from flask import Blueprint, g, jsonify, request

from sketchflow.auth import ADMIN_ROLES, DRAFT_CENTER_OPERATOR
from sketchflow.middleware.permission_required import require_roles
from sketchflow.services import assignment_service
from sketchflow.utils.helpers import page_payload, parse_pagination

logger = logging.getLogger(__name__)

assignment_bp = Blueprint("assignment", __name__, url_prefix="/api/v1/assignments")


def _page(fetch):
    page, limit = parse_pagination(request.args)
    items, total = fetch(g.actor, request.args.to_dict(), page, limit)
    return jsonify(page_payload(
        [a.to_dict(include_request=True) for a in items], total, page, limit,
    ))


@assignment_bp.route("", methods=["POST"])
@require_roles(*ADMIN_ROLES)
def create_assignment():
    """Body: sketch_request_id, drafting_center_id, due_date?, notes?"""
    data = request.get_json(silent=True) or {}
    assignment = assignment_service.create(g.actor, data)
    return jsonify(assignment.to_dict(include_request=True)), 201


@assignment_bp.route("", methods=["GET"])
@require_roles(*ADMIN_ROLES)
def list_assignments():
    """Query: drafting_center_id, sketch_request_id, status, page, limit."""
    return _page(assignment_service.list_all)


@assignment_bp.route("/mine", methods=["GET"])
@require_roles(DRAFT_CENTER_OPERATOR)
def list_my_assignments():
    return _page(assignment_service.list_mine)


@assignment_bp.route("/<assignment_id>", methods=["GET"])
@require_roles(*ADMIN_ROLES, DRAFT_CENTER_OPERATOR)
def get_assignment(assignment_id):
    assignment = assignment_service.get_by_id(g.actor, assignment_id)
    return jsonify(assignment.to_dict(include_request=True))


@assignment_bp.route("/<assignment_id>", methods=["PATCH"])
@require_roles(*ADMIN_ROLES)
def update_assignment(assignment_id):
    data = request.get_json(silent=True) or {}
    assignment = assignment_service.update_assignment(g.actor, assignment_id, data)
    return jsonify(assignment.to_dict(include_request=True))


@assignment_bp.route("/<assignment_id>/respond", methods=["POST"])
@require_roles(DRAFT_CENTER_OPERATOR)
def respond_to_assignment(assignment_id):
    """Body: action = "accept" (default) | "reject"."""
    data = request.get_json(silent=True) or {}
    assignment = assignment_service.respond(g.actor, assignment_id, data.get("action", "accept"))
    return jsonify(assignment.to_dict(include_request=True))
