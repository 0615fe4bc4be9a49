"""
JWT Auth Middleware — parses the bearer token and sets ``g.actor``.

The middleware never rejects a request itself. A missing, expired, or
malformed token leaves ``g.actor = None``; route decorators in
``permission_required`` decide whether that is acceptable.
"""

import logging

import jwt as pyjwt
from flask import g, request

from sketchflow.auth import Actor, normalize_role
from sketchflow.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def actor_from_claims(payload: dict) -> Actor | None:
    """Build an Actor from verified token claims, or None if unusable."""
    sub = payload.get("sub")
    role = normalize_role(payload.get("role"))
    if sub is None or role is None:
        return None
    center_id = payload.get("center_id")
    return Actor(
        id=str(sub),
        role=role,
        center_id=str(center_id) if center_id not in (None, "") else None,
    )


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.actor = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("Invalid access token on %s: %s", path, exc)
            return

        g.actor = actor_from_claims(payload)
        if g.actor is None:
            logger.info("Access token without usable sub/role on %s", path)
