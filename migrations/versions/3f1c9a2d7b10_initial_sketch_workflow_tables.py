"""initial sketch workflow tables

Revision ID: 3f1c9a2d7b10
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1c9a2d7b10'
down_revision = None
branch_labels = None
depends_on = None


def _hierarchy_columns():
    return [
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    ]


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    ]


def upgrade():
    # ── Hierarchy masters ────────────────────────────────────────────
    op.create_table(
        "regions",
        *_hierarchy_columns(),
        sa.UniqueConstraint("code", name="uq_region_code"),
        sa.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_region_status"),
    )
    op.create_table(
        "sub_regions",
        *_hierarchy_columns(),
        sa.Column("region_id", sa.Integer, sa.ForeignKey("regions.id"), nullable=False),
        sa.UniqueConstraint("region_id", "code", name="uq_sub_region_code"),
        sa.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_sub_region_status"),
    )
    op.create_table(
        "sub_districts",
        *_hierarchy_columns(),
        sa.Column("region_id", sa.Integer, sa.ForeignKey("regions.id"), nullable=False),
        sa.Column("sub_region_id", sa.Integer, sa.ForeignKey("sub_regions.id"), nullable=False),
        sa.UniqueConstraint("sub_region_id", "code", name="uq_sub_district_code"),
        sa.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_sub_district_status"),
    )
    op.create_table(
        "settlements",
        *_hierarchy_columns(),
        sa.Column("region_id", sa.Integer, sa.ForeignKey("regions.id"), nullable=False),
        sa.Column("sub_region_id", sa.Integer, sa.ForeignKey("sub_regions.id"), nullable=False),
        sa.Column("sub_district_id", sa.Integer, sa.ForeignKey("sub_districts.id"), nullable=False),
        sa.UniqueConstraint("sub_district_id", "code", name="uq_settlement_code"),
        sa.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_settlement_status"),
    )
    for table, fks in (
        ("regions", []),
        ("sub_regions", ["region_id"]),
        ("sub_districts", ["region_id", "sub_region_id"]),
        ("settlements", ["region_id", "sub_region_id", "sub_district_id"]),
    ):
        for column in ["name", "status", *fks]:
            op.create_index(f"ix_{table}_{column}", table, [column])

    # ── Drafting centers ─────────────────────────────────────────────
    op.create_table(
        "drafting_centers",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("address_street", sa.String(200), nullable=True),
        sa.Column("address_city", sa.String(100), nullable=False),
        sa.Column("address_state", sa.String(100), nullable=True),
        sa.Column("address_pincode", sa.String(10), nullable=False),
        sa.Column("address_country", sa.String(100), nullable=True),
        sa.Column("contact_email", sa.String(150), nullable=True),
        sa.Column("contact_phone", sa.String(20), nullable=True),
        sa.Column("contact_alternate_phone", sa.String(20), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("availability", sa.String(20), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=True),
        sa.Column("created_by_id", sa.String(64), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime, nullable=True),
        sa.UniqueConstraint("code", name="uq_drafting_center_code"),
        sa.CheckConstraint("status IN ('ACTIVE','INACTIVE')", name="ck_drafting_center_status"),
        sa.CheckConstraint(
            "availability IN ('AVAILABLE','BUSY','OFFLINE')",
            name="ck_drafting_center_availability",
        ),
        sa.CheckConstraint(
            "capacity IS NULL OR capacity >= 0", name="ck_drafting_center_capacity",
        ),
    )
    for column in ("name", "contact_email", "status", "created_by_id", "deleted_at"):
        op.create_index(f"ix_drafting_centers_{column}", "drafting_centers", [column])

    # ── Sketch requests & application id counters ────────────────────
    op.create_table(
        "sketch_requests",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("submitter_id", sa.String(64), nullable=False),
        sa.Column("survey_kind", sa.String(10), nullable=False),
        sa.Column("region_id", sa.Integer, sa.ForeignKey("regions.id"), nullable=False),
        sa.Column("sub_region_id", sa.Integer, sa.ForeignKey("sub_regions.id"), nullable=False),
        sa.Column("sub_district_id", sa.Integer, sa.ForeignKey("sub_districts.id"), nullable=False),
        sa.Column("settlement_id", sa.Integer, sa.ForeignKey("settlements.id"), nullable=False),
        sa.Column("survey_number", sa.String(100), nullable=False),
        sa.Column("application_id", sa.String(120), nullable=False),
        sa.Column("documents", sa.JSON, nullable=False),
        sa.Column("audio", sa.JSON, nullable=True),
        sa.Column("extra_documents", sa.JSON, nullable=False),
        sa.Column("notes", sa.String(2000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("application_id", name="uq_sketch_request_application_id"),
        sa.CheckConstraint(
            "status IN ('PENDING','ASSIGNED','UNDER_REVIEW','APPROVED','REJECTED')",
            name="ck_sketch_request_status",
        ),
        sa.CheckConstraint(
            "survey_kind IN ('JOINT','SINGLE')", name="ck_sketch_request_survey_kind",
        ),
    )
    op.create_index("ix_sketch_requests_submitter_id", "sketch_requests", ["submitter_id"])
    op.create_index("ix_sketch_requests_survey_number", "sketch_requests", ["survey_number"])
    op.create_index(
        "ix_sketch_request_submitter_created", "sketch_requests", ["submitter_id", "created_at"],
    )
    op.create_index(
        "ix_sketch_request_status_created", "sketch_requests", ["status", "created_at"],
    )
    op.create_index(
        "ix_sketch_request_location", "sketch_requests",
        ["region_id", "sub_region_id", "sub_district_id", "settlement_id"],
    )

    op.create_table(
        "application_sequences",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("region_code", sa.String(50), nullable=False),
        sa.Column("sub_region_code", sa.String(50), nullable=False),
        sa.Column("year", sa.String(2), nullable=False),
        sa.Column("last_value", sa.Integer, nullable=False),
        sa.UniqueConstraint(
            "region_code", "sub_region_code", "year", name="uq_application_sequence_scope",
        ),
    )

    # ── Assignments ──────────────────────────────────────────────────
    op.create_table(
        "assignments",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("sketch_request_id", sa.Integer, sa.ForeignKey("sketch_requests.id"),
                  nullable=False),
        sa.Column("drafting_center_id", sa.Integer, sa.ForeignKey("drafting_centers.id"),
                  nullable=False),
        sa.Column("assigned_to_user_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("assigned_by_user_id", sa.String(64), nullable=False),
        sa.Column("assigned_at", sa.DateTime, nullable=False),
        sa.Column("due_date", sa.DateTime, nullable=True),
        sa.Column("completed_at", sa.DateTime, nullable=True),
        sa.Column("notes", sa.String(1000), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('ASSIGNED','IN_PROGRESS','COMPLETED','ON_HOLD','CANCELLED')",
            name="ck_assignment_status",
        ),
    )
    # At most one non-cancelled assignment per sketch request
    op.create_index(
        "uq_assignment_active_per_request", "assignments", ["sketch_request_id"],
        unique=True,
        sqlite_where=sa.text("status <> 'CANCELLED'"),
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )
    for column in ("sketch_request_id", "drafting_center_id", "status", "assigned_at"):
        op.create_index(f"ix_assignments_{column}", "assignments", [column])
    op.create_index(
        "ix_assignment_center_status_assigned", "assignments",
        ["drafting_center_id", "status", "assigned_at"],
    )
    op.create_index(
        "ix_assignment_assignee_status", "assignments", ["assigned_to_user_id", "status"],
    )


def downgrade():
    op.drop_table("assignments")
    op.drop_table("application_sequences")
    op.drop_table("sketch_requests")
    op.drop_table("drafting_centers")
    op.drop_table("settlements")
    op.drop_table("sub_districts")
    op.drop_table("sub_regions")
    op.drop_table("regions")
