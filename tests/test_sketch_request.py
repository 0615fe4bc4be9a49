"""
Sketch request tests — submission, reads, admin overview, reconciliation.
"""

import pytest

from sketchflow.auth import DRAFT_CENTER_OPERATOR, SURVEYOR, Actor
from sketchflow.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from sketchflow.models import db
from sketchflow.models.assignment import Assignment
from sketchflow.models.sketch_request import SketchRequest
from sketchflow.services import hierarchy_service, notification_service, sketch_request_service

BASE = "/api/v1/sketch-requests"


# ═════════════════════════════════════════════════════════════════════════════
# Submission
# ═════════════════════════════════════════════════════════════════════════════


class TestSubmit:
    def test_surveyor_submits(self, client, surveyor_headers, sketch_payload):
        res = client.post(BASE, json=sketch_payload(notes="  east boundary  "),
                          headers=surveyor_headers)
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "PENDING"
        assert data["submitter_id"] == "surveyor-1"
        assert data["notes"] == "east boundary"
        assert data["application_id"].startswith("KA-BLR/BLR-N/")
        assert data["location"]["settlement"]["code"] == "JKR"
        atlas = data["documents"]["atlas"]
        assert atlas["url"] == "https://files.example.org/atlas-42.pdf"
        assert atlas["uploaded_at"] is not None

    def test_only_surveyors_submit(self, client, admin_headers, sketch_payload):
        res = client.post(BASE, json=sketch_payload(), headers=admin_headers)
        assert res.status_code == 403

    def test_service_rejects_non_surveyor(self, admin, sketch_payload):
        with pytest.raises(ForbiddenError):
            sketch_request_service.create(admin, sketch_payload())

    def test_missing_fields_listed(self, client, surveyor_headers, sketch_payload):
        res = client.post(BASE, json=sketch_payload(settlement_id=None, survey_number=" "),
                          headers=surveyor_headers)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_REQUIRED"
        assert set(body["details"]) == {"settlement_id", "survey_number"}

    def test_no_documents(self, client, surveyor_headers, sketch_payload):
        res = client.post(BASE, json=sketch_payload(documents={"atlas": {"url": ""}}),
                          headers=surveyor_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "NO_DOCUMENTS"

    def test_unknown_document_key(self, surveyor, sketch_payload):
        with pytest.raises(ValidationError):
            sketch_request_service.create(
                surveyor, sketch_payload(documents={"passport": "https://x.example/p.pdf"}),
            )

    def test_document_object_form(self, surveyor, sketch_payload):
        row = sketch_request_service.create(surveyor, sketch_payload(documents={
            "moola_tippani": {"url": "https://x.example/m.pdf", "file_name": "m.pdf",
                              "mime_type": "application/pdf", "size": 2048},
            "kharabu": None,
        }))
        assert set(row.documents) == {"moola_tippani"}
        assert row.documents["moola_tippani"]["size"] == 2048

    def test_survey_kind_aliases(self, surveyor, sketch_payload):
        row = sketch_request_service.create(
            surveyor, sketch_payload(survey_kind=None, survey_type="joint_flat"),
        )
        assert row.survey_kind == "JOINT"

    def test_bad_survey_kind(self, surveyor, sketch_payload):
        with pytest.raises(ValidationError):
            sketch_request_service.create(surveyor, sketch_payload(survey_kind="TRIPLE"))

    def test_notes_length_limit(self, surveyor, sketch_payload):
        with pytest.raises(ValidationError):
            sketch_request_service.create(surveyor, sketch_payload(notes="x" * 2001))
        row = sketch_request_service.create(surveyor, sketch_payload(notes="x" * 2000))
        assert len(row.notes) == 2000

    def test_survey_number_length_limit(self, client, surveyor_headers, sketch_payload):
        res = client.post(BASE, json=sketch_payload(survey_number="9" * 101),
                          headers=surveyor_headers)
        assert res.status_code == 400
        assert "survey_number" in res.get_json()["details"]
        assert db.session.query(SketchRequest).count() == 0

    @pytest.mark.parametrize("field,length", [("url", 2049), ("file_name", 256), ("mime_type", 101)])
    def test_document_reference_length_limits(self, surveyor, sketch_payload, field, length):
        ref = {"url": "https://files.example.org/atlas.pdf", field: "f" * length}
        with pytest.raises(ValidationError) as exc:
            sketch_request_service.create(surveyor, sketch_payload(documents={"atlas": ref}))
        assert f"documents.atlas.{field}" in exc.value.details

    def test_extra_documents_limit(self, surveyor, sketch_payload):
        docs = [f"https://x.example/{i}.pdf" for i in range(21)]
        with pytest.raises(ValidationError):
            sketch_request_service.create(surveyor, sketch_payload(extra_documents=docs))
        row = sketch_request_service.create(surveyor, sketch_payload(extra_documents=docs[:20]))
        assert len(row.extra_documents) == 20

    def test_audio_reference(self, surveyor, sketch_payload):
        row = sketch_request_service.create(
            surveyor, sketch_payload(audio="https://x.example/voice.m4a"),
        )
        assert row.audio["url"] == "https://x.example/voice.m4a"

    def test_broken_chain_persists_nothing(self, client, surveyor_headers, sketch_payload, chain):
        other = hierarchy_service.create_sub_district(
            {"code": "HBL", "name": "Hebbal", "sub_region_id": chain["SubRegion"].id},
        )
        res = client.post(BASE, json=sketch_payload(sub_district_id=other.id),
                          headers=surveyor_headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_HIERARCHY_MISMATCH"
        assert db.session.query(SketchRequest).count() == 0

    def test_missing_settlement_is_404(self, surveyor, sketch_payload):
        with pytest.raises(NotFoundError) as exc:
            sketch_request_service.create(surveyor, sketch_payload(settlement_id=999))
        assert exc.value.resource == "Settlement"

    def test_notification_emitted(self, surveyor, sketch_payload):
        seen = []
        notification_service.register_sink(lambda event, ctx: seen.append((event, ctx)))
        row = sketch_request_service.create(surveyor, sketch_payload())
        assert seen == [("sketch_request.created", {
            "sketch_request_id": row.id,
            "submitter_id": "surveyor-1",
            "application_id": row.application_id,
        })]

    def test_failing_sink_does_not_break_submission(self, surveyor, sketch_payload):
        def _boom(event, ctx):
            raise RuntimeError("sms gateway down")

        notification_service.register_sink(_boom)
        row = sketch_request_service.create(surveyor, sketch_payload())
        assert row.id is not None


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


class TestReads:
    def test_owner_reads_own(self, client, surveyor_headers, sketch_request):
        res = client.get(f"{BASE}/{sketch_request.id}", headers=surveyor_headers)
        assert res.status_code == 200
        assert res.get_json()["id"] == sketch_request.id

    def test_other_surveyor_forbidden(self, client, other_surveyor_headers, sketch_request):
        res = client.get(f"{BASE}/{sketch_request.id}", headers=other_surveyor_headers)
        assert res.status_code == 403

    def test_admin_reads_any(self, client, admin_headers, sketch_request):
        res = client.get(f"{BASE}/{sketch_request.id}", headers=admin_headers)
        assert res.status_code == 200

    def test_operator_cannot_read_directly(self, sketch_request):
        actor = Actor(id="op", role=DRAFT_CENTER_OPERATOR, center_id="1")
        with pytest.raises(ForbiddenError):
            sketch_request_service.get_by_id(actor, sketch_request.id)

    def test_missing_request(self, client, admin_headers):
        res = client.get(f"{BASE}/4040", headers=admin_headers)
        assert res.status_code == 404

    def test_surveyor_list_is_pinned_to_own(self, client, surveyor_headers, sketch_payload,
                                            sketch_request):
        other = Actor(id="surveyor-2", role=SURVEYOR)
        sketch_request_service.create(other, sketch_payload(survey_number="99"))
        res = client.get(f"{BASE}?submitter_id=surveyor-2", headers=surveyor_headers)
        items = res.get_json()["items"]
        assert [i["submitter_id"] for i in items] == ["surveyor-1"]

    def test_admin_filters_by_submitter(self, client, admin_headers, sketch_payload,
                                        sketch_request):
        other = Actor(id="surveyor-2", role=SURVEYOR)
        sketch_request_service.create(other, sketch_payload(survey_number="99"))
        res = client.get(f"{BASE}?submitter_id=surveyor-2", headers=admin_headers)
        data = res.get_json()
        assert data["total"] == 1
        assert data["items"][0]["survey_number"] == "99"

    def test_newest_first(self, surveyor, sketch_payload):
        first = sketch_request_service.create(surveyor, sketch_payload(survey_number="1"))
        second = sketch_request_service.create(surveyor, sketch_payload(survey_number="2"))
        items, total = sketch_request_service.list_requests(surveyor, {}, 1, 20)
        assert total == 2
        assert [r.id for r in items] == [second.id, first.id]

    def test_invalid_status_filter(self, admin):
        with pytest.raises(ValidationError):
            sketch_request_service.list_requests(admin, {"status": "LOST"}, 1, 20)

    def test_admin_filters_by_center(self, admin, center, sketch_request, surveyor, sketch_payload):
        from sketchflow.services import assignment_service

        sketch_request_service.create(surveyor, sketch_payload(survey_number="77"))
        assignment_service.create(admin, {
            "sketch_request_id": sketch_request.id, "drafting_center_id": center.id,
        })
        items, total = sketch_request_service.list_requests(
            admin, {"drafting_center_id": str(center.id)}, 1, 20,
        )
        assert total == 1
        assert items[0].id == sketch_request.id


# ═════════════════════════════════════════════════════════════════════════════
# Admin overview & reconciliation
# ═════════════════════════════════════════════════════════════════════════════


class TestOverview:
    def test_with_assignments(self, client, admin_headers, admin, center, sketch_request,
                              surveyor, sketch_payload):
        from sketchflow.services import assignment_service

        unassigned = sketch_request_service.create(surveyor, sketch_payload(survey_number="5"))
        assignment = assignment_service.create(admin, {
            "sketch_request_id": sketch_request.id, "drafting_center_id": center.id,
        })
        res = client.get(f"{BASE}/with-assignments", headers=admin_headers)
        assert res.status_code == 200
        by_id = {i["id"]: i for i in res.get_json()["items"]}
        assert by_id[sketch_request.id]["current_assignment"]["id"] == assignment.id
        assert by_id[unassigned.id]["current_assignment"] is None

    def test_with_assignments_admin_only(self, client, surveyor_headers):
        res = client.get(f"{BASE}/with-assignments", headers=surveyor_headers)
        assert res.status_code == 403


class TestReconcile:
    def test_assigned_without_assignment_goes_pending(self, client, admin_headers, sketch_request):
        sketch_request.status = "ASSIGNED"
        db.session.commit()
        res = client.post(f"{BASE}/{sketch_request.id}/reconcile-status", headers=admin_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["changed"] is True
        assert body["sketch_request"]["status"] == "PENDING"

    def test_pending_with_live_assignment_goes_assigned(self, admin, center, sketch_request):
        db.session.add(Assignment(
            sketch_request_id=sketch_request.id, drafting_center_id=center.id,
            status="IN_PROGRESS", assigned_by_user_id="admin-1",
        ))
        db.session.commit()
        row, changed = sketch_request_service.reconcile_status(admin, sketch_request.id)
        assert changed is True
        assert row.status == "ASSIGNED"

    def test_idempotent(self, admin, sketch_request):
        _, changed = sketch_request_service.reconcile_status(admin, sketch_request.id)
        assert changed is False

    def test_review_states_untouched(self, admin, sketch_request):
        sketch_request.status = "UNDER_REVIEW"
        db.session.commit()
        row, changed = sketch_request_service.reconcile_status(admin, sketch_request.id)
        assert changed is False
        assert row.status == "UNDER_REVIEW"

    def test_admin_only(self, surveyor, sketch_request):
        with pytest.raises(ForbiddenError):
            sketch_request_service.reconcile_status(surveyor, sketch_request.id)


class TestReconcileAll:
    def test_fixes_only_drifted_rows(self, center, surveyor, sketch_payload):
        drifted = sketch_request_service.create(surveyor, sketch_payload(survey_number="1"))
        healthy = sketch_request_service.create(surveyor, sketch_payload(survey_number="2"))
        reviewed = sketch_request_service.create(surveyor, sketch_payload(survey_number="3"))
        drifted.status = "ASSIGNED"
        reviewed.status = "APPROVED"
        db.session.commit()

        assert sketch_request_service.reconcile_all() == 1
        db.session.expire_all()
        assert db.session.get(SketchRequest, drifted.id).status == "PENDING"
        assert db.session.get(SketchRequest, healthy.id).status == "PENDING"
        assert db.session.get(SketchRequest, reviewed.id).status == "APPROVED"

    def test_cli_command(self, app, sketch_request):
        sketch_request.status = "ASSIGNED"
        db.session.commit()
        result = app.test_cli_runner().invoke(args=["reconcile-sketch-statuses"])
        assert result.exit_code == 0
        db.session.expire_all()
        assert db.session.get(SketchRequest, sketch_request.id).status == "PENDING"
