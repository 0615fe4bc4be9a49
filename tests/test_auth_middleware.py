"""
Auth middleware, role decorators and app-level request handling tests.

Tests cover:
  - Bearer token parsing into g.actor (valid, expired, forged, wrong type)
  - Role aliases carried by older tokens
  - 401 vs 403 from the route decorators
  - Error envelope for unknown routes and unsupported methods
  - Request timing / request-id headers, Content-Type guard
  - Database failures reported as ERR_DATABASE without internals
  - Health probes (no token required)
"""

from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import pytest
from flask import g

from sketchflow.auth import ADMIN, DRAFT_CENTER_OPERATOR, SURVEYOR, normalize_role
from sketchflow.middleware.jwt_auth import actor_from_claims
from sketchflow.services.jwt_service import decode_access_token, generate_access_token

REGIONS = "/api/v1/masters/regions"


# ═══════════════════════════════════════════════════════════════
# Token handling
# ═══════════════════════════════════════════════════════════════


class TestTokens:
    def test_round_trip_claims(self):
        token = generate_access_token(42, SURVEYOR)
        payload = decode_access_token(token)
        assert payload["sub"] == "42"
        assert payload["role"] == SURVEYOR
        assert payload["type"] == "access"
        assert "center_id" not in payload

    def test_operator_token_carries_center(self):
        payload = decode_access_token(generate_access_token("op", DRAFT_CENTER_OPERATOR, center_id=3))
        actor = actor_from_claims(payload)
        assert actor.is_operator
        assert actor.center_id == "3"

    def test_claims_without_role_are_unusable(self):
        assert actor_from_claims({"sub": "1"}) is None
        assert actor_from_claims({"sub": "1", "role": "JANITOR"}) is None

    def test_cad_alias(self):
        assert normalize_role("cad") == DRAFT_CENTER_OPERATOR
        assert normalize_role(" admin ") == ADMIN


class TestMiddleware:
    def test_valid_token_sets_actor(self, app, make_headers):
        with app.test_request_context(REGIONS, headers=make_headers(ADMIN, "a-7")):
            app.preprocess_request()
            assert g.actor.id == "a-7"
            assert g.actor.is_admin

    def test_no_token_is_401(self, client):
        res = client.get(REGIONS)
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_expired_token_is_401(self, client, make_headers):
        res = client.get(REGIONS, headers=make_headers(ADMIN, "a", expires_in=-10))
        assert res.status_code == 401

    def test_forged_token_is_401(self, client):
        now = datetime.now(timezone.utc)
        token = pyjwt.encode(
            {"sub": "x", "role": ADMIN, "type": "access", "iat": now, "exp": now + timedelta(minutes=5)},
            "not-the-secret-key-but-still-32-bytes-long", algorithm="HS256",
        )
        res = client.get(REGIONS, headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_wrong_token_type_is_401(self, app, client):
        now = datetime.now(timezone.utc)
        token = pyjwt.encode(
            {"sub": "x", "role": ADMIN, "type": "refresh", "iat": now, "exp": now + timedelta(minutes=5)},
            app.config["JWT_SECRET_KEY"], algorithm="HS256",
        )
        res = client.get(REGIONS, headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_wrong_role_is_403_with_required_roles(self, client, surveyor_headers):
        res = client.post(REGIONS, json={"code": "X", "name": "X"}, headers=surveyor_headers)
        assert res.status_code == 403
        assert res.get_json()["details"]["required_any"] == ["ADMIN", "SUPER_ADMIN"]

    def test_cad_token_acts_as_operator(self, client, make_headers, center, sketch_request, admin):
        from sketchflow.services import assignment_service

        a = assignment_service.create(admin, {
            "sketch_request_id": sketch_request.id, "drafting_center_id": center.id,
        })
        res = client.post(f"/api/v1/assignments/{a.id}/respond",
                          headers=make_headers("CAD", "legacy-op", center_id=center.id),
                          json={"action": "accept"})
        assert res.status_code == 200


# ═══════════════════════════════════════════════════════════════
# App-level handling
# ═══════════════════════════════════════════════════════════════


class TestAppHandling:
    def test_unknown_route_envelope(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_method_not_allowed(self, client, admin_headers):
        res = client.delete(REGIONS, headers=admin_headers)
        assert res.status_code == 405
        assert res.get_json()["code"] == "ERR_HTTP_405"

    def test_database_failure_envelope(self, client, admin_headers, monkeypatch):
        from sqlalchemy.exc import OperationalError

        from sketchflow.services import drafting_center_service

        def _lost_connection(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection lost"))

        monkeypatch.setattr(drafting_center_service, "list_centers", _lost_connection)
        res = client.get("/api/v1/masters/drafting-centers", headers=admin_headers)
        assert res.status_code == 500
        body = res.get_json()
        assert body["code"] == "ERR_DATABASE"
        assert "connection lost" not in body["error"]

    def test_non_json_body_rejected(self, client, admin_headers):
        res = client.post(REGIONS, data="code=X", headers={
            **admin_headers, "Content-Type": "application/x-www-form-urlencoded",
        })
        assert res.status_code == 415

    def test_form_body_rejected_before_reaching_view(self, client, admin_headers):
        res = client.post(REGIONS, data={"code": "X", "name": "Y"}, headers=admin_headers)
        assert res.status_code == 415
        assert res.get_json()["code"] == "ERR_HTTP_415"
        listing = client.get(REGIONS, headers=admin_headers).get_json()
        assert listing["total"] == 0

    def test_post_without_body_allowed(self, client, admin_headers, sketch_request):
        res = client.post(f"/api/v1/sketch-requests/{sketch_request.id}/reconcile-status",
                          headers=admin_headers)
        assert res.status_code == 200
        assert res.get_json()["changed"] is False

    def test_request_id_echoed(self, client, admin_headers):
        res = client.get(REGIONS, headers={**admin_headers, "X-Request-ID": "req-123"})
        assert res.headers["X-Request-ID"] == "req-123"
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    @pytest.mark.parametrize("path", ["/api/v1/health/ready", "/api/v1/health/live"])
    def test_health_without_token(self, client, path):
        res = client.get(path)
        assert res.status_code == 200

    def test_live_reports_database(self, client):
        body = client.get("/api/v1/health/live").get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["schema"]["status"] == "ok"
