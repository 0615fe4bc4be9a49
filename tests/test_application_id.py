"""
Application-ID sequencer tests.

Format: {region_code}/{sub_region_code}/{YY}/{N}, N strictly increasing
per (region code, sub-region code, year) scope, seeded from ids already
stored when the scope has no counter row yet.
"""

from datetime import datetime, timezone

import pytest

from sketchflow.core.exceptions import ConflictError
from sketchflow.models import db
from sketchflow.models.sketch_request import ApplicationSequence, SketchRequest
from sketchflow.services.application_id_service import (
    format_application_id,
    max_existing_number,
    next_application_id,
    realign_sequence,
    two_digit_year,
)

NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def _stored_request(chain, application_id):
    """Insert a request row with a fixed application id (bypasses the service)."""
    row = SketchRequest(
        submitter_id="legacy",
        survey_kind="SINGLE",
        region_id=chain["Region"].id,
        sub_region_id=chain["SubRegion"].id,
        sub_district_id=chain["SubDistrict"].id,
        settlement_id=chain["Settlement"].id,
        survey_number="1",
        application_id=application_id,
        documents={"atlas": {"url": "https://files.example.org/a.pdf"}},
        extra_documents=[],
        status="PENDING",
    )
    db.session.add(row)
    db.session.commit()
    return row


class TestFormat:
    def test_two_digit_year(self):
        assert two_digit_year(NOW) == "26"
        assert two_digit_year(datetime(2005, 1, 1)) == "05"

    def test_format(self):
        assert format_application_id("KA-BLR", "BLR-N", "26", 7) == "KA-BLR/BLR-N/26/7"


class TestSequence:
    def test_first_id_in_scope_is_one(self):
        assert next_application_id("KA-BLR", "BLR-N", NOW) == "KA-BLR/BLR-N/26/1"

    def test_ids_increase_within_scope(self):
        issued = [next_application_id("KA-BLR", "BLR-N", NOW) for _ in range(3)]
        assert issued == ["KA-BLR/BLR-N/26/1", "KA-BLR/BLR-N/26/2", "KA-BLR/BLR-N/26/3"]

    def test_scopes_are_independent(self):
        next_application_id("KA-BLR", "BLR-N", NOW)
        next_application_id("KA-BLR", "BLR-N", NOW)
        assert next_application_id("KA-BLR", "BLR-S", NOW) == "KA-BLR/BLR-S/26/1"
        assert next_application_id("KA-MYS", "BLR-N", NOW) == "KA-MYS/BLR-N/26/1"

    def test_new_year_starts_again(self):
        next_application_id("KA-BLR", "BLR-N", NOW)
        assert next_application_id("KA-BLR", "BLR-N", datetime(2027, 1, 1, tzinfo=timezone.utc)) \
            == "KA-BLR/BLR-N/27/1"

    def test_single_counter_row_per_scope(self):
        for _ in range(4):
            next_application_id("KA-BLR", "BLR-N", NOW)
        rows = db.session.query(ApplicationSequence).filter_by(
            region_code="KA-BLR", sub_region_code="BLR-N", year="26",
        ).all()
        assert len(rows) == 1
        assert rows[0].last_value == 4

    def test_missing_codes_rejected(self):
        with pytest.raises(ValueError):
            next_application_id("", "BLR-N", NOW)


class TestSeedingFromStoredIds:
    def test_numeric_maximum_is_used(self, chain):
        _stored_request(chain, "KA-BLR/BLR-N/26/9")
        _stored_request(chain, "KA-BLR/BLR-N/26/10")
        assert max_existing_number("KA-BLR", "BLR-N", "26") == 10
        assert next_application_id("KA-BLR", "BLR-N", NOW) == "KA-BLR/BLR-N/26/11"

    def test_other_scopes_and_years_ignored(self, chain):
        _stored_request(chain, "KA-BLR/BLR-N/25/40")
        _stored_request(chain, "KA-BLR/BLR-NX/26/50")
        assert next_application_id("KA-BLR", "BLR-N", NOW) == "KA-BLR/BLR-N/26/1"

    def test_pattern_characters_in_codes_are_literal(self, chain):
        # "." must not match "X", "_" must not act as a LIKE wildcard
        _stored_request(chain, "AXB/C_D/26/30")
        _stored_request(chain, "A.B/CzD/26/31")
        assert max_existing_number("A.B", "C_D", "26") == 0
        _stored_request(chain, "A.B/C_D/26/5")
        assert max_existing_number("A.B", "C_D", "26") == 5

    def test_non_numeric_suffix_ignored(self, chain):
        _stored_request(chain, "KA-BLR/BLR-N/26/7a")
        assert max_existing_number("KA-BLR", "BLR-N", "26") == 0


class TestIssuedOnCreate:
    def test_request_gets_id_from_its_codes(self, sketch_request):
        year = two_digit_year()
        assert sketch_request.application_id == f"KA-BLR/BLR-N/{year}/1"

    def test_consecutive_requests_get_consecutive_ids(self, surveyor, sketch_payload, sketch_request):
        from sketchflow.services import sketch_request_service

        second = sketch_request_service.create(surveyor, sketch_payload(survey_number="43"))
        first_n = int(sketch_request.application_id.rsplit("/", 1)[1])
        second_n = int(second.application_id.rsplit("/", 1)[1])
        assert second_n == first_n + 1

    def test_collision_is_reported_and_retry_gets_next_id(self, chain, surveyor, sketch_payload,
                                                          sketch_request):
        from sketchflow.services import sketch_request_service

        year = two_digit_year()
        # A stored row already holds the id the counter hands out next
        _stored_request(chain, f"KA-BLR/BLR-N/{year}/2")

        with pytest.raises(ConflictError) as exc:
            sketch_request_service.create(surveyor, sketch_payload(survey_number="43"))
        assert exc.value.code == "APPLICATION_ID_COLLISION"

        retry = sketch_request_service.create(surveyor, sketch_payload(survey_number="43"))
        assert retry.application_id == f"KA-BLR/BLR-N/{year}/3"

    def test_collision_over_http_is_409(self, client, chain, surveyor_headers, sketch_payload,
                                        sketch_request):
        _stored_request(chain, f"KA-BLR/BLR-N/{two_digit_year()}/2")
        res = client.post("/api/v1/sketch-requests", json=sketch_payload(survey_number="43"),
                          headers=surveyor_headers)
        assert res.status_code == 409
        assert res.get_json()["code"] == "APPLICATION_ID_COLLISION"


class TestRealign:
    def test_counter_moves_past_stored_ids(self, chain):
        next_application_id("KA-BLR", "BLR-N", NOW)
        _stored_request(chain, "KA-BLR/BLR-N/26/5")
        assert realign_sequence("KA-BLR", "BLR-N", NOW) == 5
        assert next_application_id("KA-BLR", "BLR-N", NOW) == "KA-BLR/BLR-N/26/6"

    def test_counter_never_moves_back(self):
        for _ in range(3):
            next_application_id("KA-BLR", "BLR-N", NOW)
        realign_sequence("KA-BLR", "BLR-N", NOW)
        assert next_application_id("KA-BLR", "BLR-N", NOW) == "KA-BLR/BLR-N/26/4"

    def test_scope_without_counter_row_is_left_alone(self, chain):
        _stored_request(chain, "KA-BLR/BLR-N/26/8")
        assert realign_sequence("KA-BLR", "BLR-N", NOW) == 8
        assert db.session.query(ApplicationSequence).count() == 0
        assert next_application_id("KA-BLR", "BLR-N", NOW) == "KA-BLR/BLR-N/26/9"
