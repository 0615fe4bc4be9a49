"""
SketchFlow
Administrative location hierarchy models.

Models:
    - Region:       root level, code unique platform-wide
    - SubRegion:    child of Region, code unique per region
    - SubDistrict:  child of SubRegion, carries a denormalized region_id
    - Settlement:   leaf, carries the full ancestor chain

Architecture:
    Region ──1:N──▶ SubRegion ──1:N──▶ SubDistrict ──1:N──▶ Settlement

Rows are never deleted; retirement is ``status = INACTIVE``.
"""

from datetime import datetime, timezone

from sketchflow.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

MASTER_STATUSES = {"ACTIVE", "INACTIVE"}

# Top-down order; validate_chain walks it and error messages use these names
LEVELS = ("Region", "SubRegion", "SubDistrict", "Settlement")


class _HierarchyColumns:
    """Columns shared by every hierarchy level."""

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(200), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="ACTIVE", index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ── Region ───────────────────────────────────────────────────────────────────


class Region(_HierarchyColumns, db.Model):
    __tablename__ = "regions"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_region_code"),
        db.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_region_status"),
    )

    def to_dict(self) -> dict:
        return self._base_dict()

    def __repr__(self):
        return f"<Region {self.id}: {self.code}>"


# ── SubRegion ────────────────────────────────────────────────────────────────


class SubRegion(_HierarchyColumns, db.Model):
    __tablename__ = "sub_regions"
    __table_args__ = (
        db.UniqueConstraint("region_id", "code", name="uq_sub_region_code"),
        db.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_sub_region_status"),
    )

    region_id = db.Column(
        db.Integer, db.ForeignKey("regions.id"), nullable=False, index=True,
    )

    region = db.relationship("Region", lazy="joined")

    def to_dict(self) -> dict:
        d = self._base_dict()
        d["region_id"] = self.region_id
        return d

    def __repr__(self):
        return f"<SubRegion {self.id}: {self.code} region={self.region_id}>"


# ── SubDistrict ──────────────────────────────────────────────────────────────


class SubDistrict(_HierarchyColumns, db.Model):
    """SubDistrict keeps region_id alongside sub_region_id.

    The copy is written once from the parent at creation and never edited,
    so ``region_id == sub_region.region_id`` holds for every row.
    """

    __tablename__ = "sub_districts"
    __table_args__ = (
        db.UniqueConstraint("sub_region_id", "code", name="uq_sub_district_code"),
        db.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_sub_district_status"),
    )

    region_id = db.Column(
        db.Integer, db.ForeignKey("regions.id"), nullable=False, index=True,
    )
    sub_region_id = db.Column(
        db.Integer, db.ForeignKey("sub_regions.id"), nullable=False, index=True,
    )

    sub_region = db.relationship("SubRegion", lazy="joined")

    def to_dict(self) -> dict:
        d = self._base_dict()
        d["region_id"] = self.region_id
        d["sub_region_id"] = self.sub_region_id
        return d

    def __repr__(self):
        return f"<SubDistrict {self.id}: {self.code} sub_region={self.sub_region_id}>"


# ── Settlement ───────────────────────────────────────────────────────────────


class Settlement(_HierarchyColumns, db.Model):
    __tablename__ = "settlements"
    __table_args__ = (
        db.UniqueConstraint("sub_district_id", "code", name="uq_settlement_code"),
        db.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_settlement_status"),
    )

    region_id = db.Column(
        db.Integer, db.ForeignKey("regions.id"), nullable=False, index=True,
    )
    sub_region_id = db.Column(
        db.Integer, db.ForeignKey("sub_regions.id"), nullable=False, index=True,
    )
    sub_district_id = db.Column(
        db.Integer, db.ForeignKey("sub_districts.id"), nullable=False, index=True,
    )

    sub_district = db.relationship("SubDistrict", lazy="joined")

    def to_dict(self) -> dict:
        d = self._base_dict()
        d["region_id"] = self.region_id
        d["sub_region_id"] = self.sub_region_id
        d["sub_district_id"] = self.sub_district_id
        return d

    def __repr__(self):
        return f"<Settlement {self.id}: {self.code} sub_district={self.sub_district_id}>"


# Level name → model, in top-down order
LEVEL_MODELS = {
    "Region": Region,
    "SubRegion": SubRegion,
    "SubDistrict": SubDistrict,
    "Settlement": Settlement,
}

# Child level → (parent level, FK attribute on child)
PARENT_OF = {
    "SubRegion": ("Region", "region_id"),
    "SubDistrict": ("SubRegion", "sub_region_id"),
    "Settlement": ("SubDistrict", "sub_district_id"),
}
