"""
SketchFlow
Sketch request models.

Models:
    - SketchRequest:        a surveyor's submission tied to one settlement,
                            carrying document references and workflow status
    - ApplicationSequence:  per-scope counter behind application ids
                            (region code, sub-region code, two-digit year)

Lifecycle:
    SketchRequest:  PENDING → ASSIGNED → UNDER_REVIEW → APPROVED | REJECTED
                    ASSIGNED ↔ PENDING is driven by the assignment workflow;
                    the review states are set by a review step outside this service.
"""

from datetime import datetime, timezone

from sketchflow.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

SKETCH_STATUSES = {"PENDING", "ASSIGNED", "UNDER_REVIEW", "APPROVED", "REJECTED"}

SURVEY_KINDS = {"JOINT", "SINGLE"}

# Accepted spellings from older surveyor clients
SURVEY_KIND_ALIASES = {
    "JOINT_FLAT": "JOINT",
    "SINGLE_FLAT": "SINGLE",
}

# Fixed set of survey record types a request may reference
DOCUMENT_KEYS = ("moola_tippani", "hissa_tippani", "atlas", "rr_pakkabook", "kharabu")

MAX_EXTRA_DOCUMENTS = 20
MAX_NOTES_LENGTH = 2000


# ── SketchRequest ────────────────────────────────────────────────────────────


class SketchRequest(db.Model):
    __tablename__ = "sketch_requests"
    __table_args__ = (
        db.UniqueConstraint("application_id", name="uq_sketch_request_application_id"),
        db.CheckConstraint(
            "status IN ('PENDING','ASSIGNED','UNDER_REVIEW','APPROVED','REJECTED')",
            name="ck_sketch_request_status",
        ),
        db.CheckConstraint(
            "survey_kind IN ('JOINT','SINGLE')", name="ck_sketch_request_survey_kind",
        ),
        db.Index("ix_sketch_request_submitter_created", "submitter_id", "created_at"),
        db.Index("ix_sketch_request_status_created", "status", "created_at"),
        db.Index(
            "ix_sketch_request_location",
            "region_id", "sub_region_id", "sub_district_id", "settlement_id",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    submitter_id = db.Column(db.String(64), nullable=False, index=True)
    survey_kind = db.Column(db.String(10), nullable=False)

    region_id = db.Column(db.Integer, db.ForeignKey("regions.id"), nullable=False)
    sub_region_id = db.Column(db.Integer, db.ForeignKey("sub_regions.id"), nullable=False)
    sub_district_id = db.Column(db.Integer, db.ForeignKey("sub_districts.id"), nullable=False)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlements.id"), nullable=False)
    survey_number = db.Column(db.String(100), nullable=False, index=True)

    application_id = db.Column(
        db.String(120), nullable=False,
        comment="{region_code}/{sub_region_code}/{YY}/{N}; written once at creation",
    )

    # key → {url, file_name, mime_type, size, uploaded_at}
    documents = db.Column(db.JSON, nullable=False, default=dict)
    audio = db.Column(db.JSON, nullable=True)
    extra_documents = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.String(MAX_NOTES_LENGTH), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="PENDING")
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    region = db.relationship("Region")
    sub_region = db.relationship("SubRegion")
    sub_district = db.relationship("SubDistrict")
    settlement = db.relationship("Settlement")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submitter_id": self.submitter_id,
            "survey_kind": self.survey_kind,
            "region_id": self.region_id,
            "sub_region_id": self.sub_region_id,
            "sub_district_id": self.sub_district_id,
            "settlement_id": self.settlement_id,
            "location": {
                "region": _ref(self.region),
                "sub_region": _ref(self.sub_region),
                "sub_district": _ref(self.sub_district),
                "settlement": _ref(self.settlement),
            },
            "survey_number": self.survey_number,
            "application_id": self.application_id,
            "documents": self.documents or {},
            "audio": self.audio,
            "extra_documents": self.extra_documents or [],
            "notes": self.notes,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<SketchRequest {self.id}: {self.application_id} [{self.status}]>"


def _ref(entity) -> dict | None:
    if entity is None:
        return None
    return {"id": entity.id, "code": entity.code, "name": entity.name}


# ── ApplicationSequence ──────────────────────────────────────────────────────


class ApplicationSequence(db.Model):
    """Last issued sequence number for one (region, sub-region, year) scope.

    Incremented with a single ``UPDATE ... SET last_value = last_value + 1``
    so concurrent submissions in one scope never read the same value.
    """

    __tablename__ = "application_sequences"
    __table_args__ = (
        db.UniqueConstraint(
            "region_code", "sub_region_code", "year", name="uq_application_sequence_scope",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    region_code = db.Column(db.String(50), nullable=False)
    sub_region_code = db.Column(db.String(50), nullable=False)
    year = db.Column(db.String(2), nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return (
            f"<ApplicationSequence {self.region_code}/{self.sub_region_code}/"
            f"{self.year} last={self.last_value}>"
        )
