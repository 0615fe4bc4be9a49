"""
Permission Decorators — role checks for route protection.

Usage:
    @bp.route("/assignments", methods=["POST"])
    @require_roles(*ADMIN_ROLES)
    def create_assignment():
        ...

    @bp.route("/masters/regions", methods=["GET"])
    @require_actor
    def list_regions():
        ...

No actor → 401. Actor with the wrong role → 403. Ownership and center
membership are checked in the services, which know the records involved.
"""

import functools
import logging

from flask import request

from sketchflow.auth import current_actor
from sketchflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_actor(f):
    """Decorator: require any authenticated actor."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_actor() is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def require_roles(*roles: str):
    """
    Decorator: require the actor to hold one of ``roles``.

    Args:
        roles: Accepted role names, e.g. ``ADMIN, SUPER_ADMIN``.
    """
    allowed = frozenset(roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = current_actor()
            if actor is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")
            if actor.role not in allowed:
                logger.warning(
                    "Actor %s (%s) denied on %s %s: requires one of %s",
                    actor.id, actor.role, request.method, request.path, sorted(allowed),
                )
                return api_error(
                    E.FORBIDDEN, "Insufficient permissions",
                    details={"required_any": sorted(allowed)},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator
