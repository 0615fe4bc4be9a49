"""
SketchFlow
Actor model and role constants.

The identity provider issues the bearer token; this service trusts its
claims and turns them into an ``Actor`` (see ``middleware/jwt_auth.py``).
Services receive the actor explicitly and never read ``flask.g``.

Roles:
    SUPER_ADMIN, ADMIN        — administrators: assign, update, manage directory
    DRAFT_CENTER_OPERATOR     — staff of one drafting center (``center_id`` claim)
    SURVEYOR                  — submits sketch requests, reads own
"""

from dataclasses import dataclass

from flask import g

# ── Roles ────────────────────────────────────────────────────────────────────

SUPER_ADMIN = "SUPER_ADMIN"
ADMIN = "ADMIN"
DRAFT_CENTER_OPERATOR = "DRAFT_CENTER_OPERATOR"
SURVEYOR = "SURVEYOR"

ROLES = {SUPER_ADMIN, ADMIN, DRAFT_CENTER_OPERATOR, SURVEYOR}

ADMIN_ROLES = {SUPER_ADMIN, ADMIN}

# Older tokens name the operator role "CAD"
ROLE_ALIASES = {"CAD": DRAFT_CENTER_OPERATOR}


def normalize_role(role) -> str | None:
    if not role:
        return None
    role = str(role).strip().upper()
    role = ROLE_ALIASES.get(role, role)
    return role if role in ROLES else None


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as asserted by the identity provider."""

    id: str
    role: str
    center_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_surveyor(self) -> bool:
        return self.role == SURVEYOR

    @property
    def is_operator(self) -> bool:
        return self.role == DRAFT_CENTER_OPERATOR


def current_actor() -> Actor | None:
    """Actor for the current request, or None when unauthenticated."""
    return getattr(g, "actor", None)
