"""
Shared pytest fixtures for the SketchFlow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_headers / *_headers: bearer tokens for each role
    - chain: a Region → SubRegion → SubDistrict → Settlement chain
    - center / other_center: live drafting centers
    - sketch_payload: valid submission body factory
    - sketch_request: a PENDING request submitted by SURVEYOR_ID
"""

import pytest

from sketchflow import create_app
from sketchflow.auth import ADMIN, DRAFT_CENTER_OPERATOR, SURVEYOR, Actor
from sketchflow.models import db as _db
from sketchflow.services import (
    drafting_center_service,
    hierarchy_service,
    notification_service,
    sketch_request_service,
)
from sketchflow.services.jwt_service import generate_access_token

ADMIN_ID = "admin-1"
SURVEYOR_ID = "surveyor-1"
OTHER_SURVEYOR_ID = "surveyor-2"
OPERATOR_ID = "operator-1"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        notification_service.clear_sinks()
        yield
        notification_service.clear_sinks()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Actors & tokens ──────────────────────────────────────────────────────


@pytest.fixture()
def make_headers():
    """Factory: Authorization header for an arbitrary role / user / center."""
    def _make(role, user_id="user-1", center_id=None, **kwargs):
        token = generate_access_token(user_id, role, center_id=center_id, **kwargs)
        return {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture()
def admin():
    return Actor(id=ADMIN_ID, role=ADMIN)


@pytest.fixture()
def surveyor():
    return Actor(id=SURVEYOR_ID, role=SURVEYOR)


@pytest.fixture()
def operator(center):
    return Actor(id=OPERATOR_ID, role=DRAFT_CENTER_OPERATOR, center_id=str(center.id))


@pytest.fixture()
def admin_headers(make_headers):
    return make_headers(ADMIN, ADMIN_ID)


@pytest.fixture()
def surveyor_headers(make_headers):
    return make_headers(SURVEYOR, SURVEYOR_ID)


@pytest.fixture()
def other_surveyor_headers(make_headers):
    return make_headers(SURVEYOR, OTHER_SURVEYOR_ID)


@pytest.fixture()
def operator_headers(make_headers, center):
    return make_headers(DRAFT_CENTER_OPERATOR, OPERATOR_ID, center_id=center.id)


@pytest.fixture()
def other_operator_headers(make_headers, other_center):
    return make_headers(DRAFT_CENTER_OPERATOR, "operator-2", center_id=other_center.id)


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def chain():
    """Create one full hierarchy chain; returns {level: entity}."""
    region = hierarchy_service.create_region({"code": "KA-BLR", "name": "Bengaluru"})
    sub_region = hierarchy_service.create_sub_region(
        {"code": "BLR-N", "name": "Bengaluru North", "region_id": region.id},
    )
    sub_district = hierarchy_service.create_sub_district(
        {"code": "YLK", "name": "Yelahanka", "sub_region_id": sub_region.id},
    )
    settlement = hierarchy_service.create_settlement(
        {"code": "JKR", "name": "Jakkur", "sub_district_id": sub_district.id},
    )
    return {
        "Region": region,
        "SubRegion": sub_region,
        "SubDistrict": sub_district,
        "Settlement": settlement,
    }


def _center_data(name, code, email):
    return {
        "name": name,
        "code": code,
        "address": {"city": "Bengaluru", "pincode": "560064"},
        "contact": {"email": email},
    }


@pytest.fixture()
def center():
    return drafting_center_service.create(
        _center_data("North Drafting", "DC-N", "north@example.org"), created_by_id=ADMIN_ID,
    )


@pytest.fixture()
def other_center():
    return drafting_center_service.create(
        _center_data("South Drafting", "DC-S", "south@example.org"), created_by_id=ADMIN_ID,
    )


@pytest.fixture()
def sketch_payload(chain):
    """Factory: a valid submission body for ``chain``, with overrides."""
    def _make(**overrides):
        body = {
            "survey_kind": "SINGLE",
            "region_id": chain["Region"].id,
            "sub_region_id": chain["SubRegion"].id,
            "sub_district_id": chain["SubDistrict"].id,
            "settlement_id": chain["Settlement"].id,
            "survey_number": "42/1A",
            "documents": {"atlas": "https://files.example.org/atlas-42.pdf"},
        }
        body.update(overrides)
        return body
    return _make


@pytest.fixture()
def sketch_request(surveyor, sketch_payload):
    return sketch_request_service.create(surveyor, sketch_payload())
