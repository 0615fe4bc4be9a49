"""
SketchFlow
Drafting center directory model.

A drafting center is an organisational unit that turns field sketches into
drawings. Operators are linked to one center through their identity token
(``center_id`` claim); the directory itself does not store users.

Centers are soft-deleted only, so historic assignments keep a valid
reference.
"""

from datetime import datetime, timezone

from sketchflow.models import db
from sketchflow.models.soft_delete import SoftDeleteMixin


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

CENTER_STATUSES = {"ACTIVE", "INACTIVE"}

CENTER_AVAILABILITY = {"AVAILABLE", "BUSY", "OFFLINE"}

DEFAULT_COUNTRY = "India"


class DraftingCenter(SoftDeleteMixin, db.Model):
    __tablename__ = "drafting_centers"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_drafting_center_code"),
        db.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_drafting_center_status"),
        db.CheckConstraint(
            "availability IN ('AVAILABLE','BUSY','OFFLINE')",
            name="ck_drafting_center_availability",
        ),
        db.CheckConstraint(
            "capacity IS NULL OR capacity >= 0", name="ck_drafting_center_capacity",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    code = db.Column(
        db.String(50), nullable=True,
        comment="Optional, upper-cased, unique when present (e.g. BLR-CAD-001)",
    )
    description = db.Column(db.String(1000), nullable=True)

    # Address
    address_street = db.Column(db.String(200), nullable=True)
    address_city = db.Column(db.String(100), nullable=False)
    address_state = db.Column(db.String(100), nullable=True)
    address_pincode = db.Column(db.String(10), nullable=False)
    address_country = db.Column(db.String(100), nullable=True, default=DEFAULT_COUNTRY)

    # Contact: at least one of email / phone
    contact_email = db.Column(db.String(150), nullable=True, index=True)
    contact_phone = db.Column(db.String(20), nullable=True)
    contact_alternate_phone = db.Column(db.String(20), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="ACTIVE", index=True)
    availability = db.Column(db.String(20), nullable=False, default="AVAILABLE")
    capacity = db.Column(
        db.Integer, nullable=True,
        comment="Upper bound on concurrent work; NULL = unlimited",
    )
    created_by_id = db.Column(db.String(64), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "address": {
                "street": self.address_street,
                "city": self.address_city,
                "state": self.address_state,
                "pincode": self.address_pincode,
                "country": self.address_country,
            },
            "contact": {
                "email": self.contact_email,
                "phone": self.contact_phone,
                "alternate_phone": self.contact_alternate_phone,
            },
            "status": self.status,
            "availability": self.availability,
            "capacity": self.capacity,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }

    def __repr__(self):
        return f"<DraftingCenter {self.id}: {self.code or self.name}>"
