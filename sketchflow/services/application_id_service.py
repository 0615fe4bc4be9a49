"""
Application-ID Sequencer.

Format:  {region_code}/{sub_region_code}/{YY}/{N}     e.g. KA-BLR/BLR-N/26/1

N starts at 1 and increases strictly within one (region code, sub-region
code, two-digit year) scope. It is issued exactly once per sketch request,
inside the caller's transaction, and never regenerated.

Algorithm:
    1. ``UPDATE application_sequences SET last_value = last_value + 1``
       for the scope. The increment is a single statement, so two writers
       in the same scope serialise on the row and read distinct values.
    2. If no row exists yet, seed one from the highest N already used by
       stored application ids with the scope prefix (rows written before the
       counter existed), inside a savepoint. Losing the insert race to
       another writer raises IntegrityError; the savepoint is rolled back
       and step 1 is retried against the row the winner created.

The unique constraint on ``sketch_requests.application_id`` stays as the
final backstop; a violation there surfaces from the request service as
ConflictError. Before raising, the service calls ``realign_sequence`` so
the counter moves past every stored id and the caller's retry succeeds.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from sketchflow.models import db
from sketchflow.models.sketch_request import ApplicationSequence, SketchRequest

logger = logging.getLogger(__name__)

_SEED_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def two_digit_year(now: datetime | None = None) -> str:
    return f"{(now or _utcnow()).year % 100:02d}"


def scope_prefix(region_code: str, sub_region_code: str, year: str) -> str:
    return f"{region_code}/{sub_region_code}/{year}/"


def format_application_id(region_code: str, sub_region_code: str, year: str, number: int) -> str:
    return f"{scope_prefix(region_code, sub_region_code, year)}{number}"


def max_existing_number(region_code: str, sub_region_code: str, year: str) -> int:
    """Highest N among stored application ids in the scope (0 if none).

    Candidate rows are narrowed with a LIKE prefix match; the trailing
    number is then parsed with a regex built from the escaped prefix, so
    codes containing ``.`` or ``+`` cannot widen the match. The
    comparison is numeric: ``/10`` beats ``/9``.
    """
    prefix = scope_prefix(region_code, sub_region_code, year)
    like_prefix = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")

    rows = db.session.execute(
        select(SketchRequest.application_id).where(
            SketchRequest.application_id.like(f"{like_prefix}%", escape="\\")
        )
    ).scalars()

    highest = 0
    for application_id in rows:
        match = pattern.match(application_id or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def _increment(region_code: str, sub_region_code: str, year: str) -> int | None:
    """Atomically bump the scope counter; None when the scope has no row."""
    result = db.session.execute(
        update(ApplicationSequence)
        .where(
            ApplicationSequence.region_code == region_code,
            ApplicationSequence.sub_region_code == sub_region_code,
            ApplicationSequence.year == year,
        )
        .values(last_value=ApplicationSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return db.session.execute(
        select(ApplicationSequence.last_value).where(
            ApplicationSequence.region_code == region_code,
            ApplicationSequence.sub_region_code == sub_region_code,
            ApplicationSequence.year == year,
        )
    ).scalar_one()


def next_application_id(region_code: str, sub_region_code: str, now: datetime | None = None) -> str:
    """Reserve and return the next application id for the scope.

    Runs in the caller's transaction and does not commit; the reservation
    becomes durable together with the sketch request that uses it.
    """
    if not region_code or not sub_region_code:
        raise ValueError("region_code and sub_region_code are required")
    year = two_digit_year(now)

    for _attempt in range(_SEED_ATTEMPTS):
        number = _increment(region_code, sub_region_code, year)
        if number is not None:
            break

        seed = max_existing_number(region_code, sub_region_code, year) + 1
        try:
            with db.session.begin_nested():
                db.session.add(ApplicationSequence(
                    region_code=region_code,
                    sub_region_code=sub_region_code,
                    year=year,
                    last_value=seed,
                ))
        except IntegrityError:
            logger.info("Sequence row for %s/%s/%s created concurrently; retrying increment",
                        region_code, sub_region_code, year)
            continue
        number = seed
        break
    else:
        raise RuntimeError(
            f"Could not reserve application id for {region_code}/{sub_region_code}/{year}"
        )

    application_id = format_application_id(region_code, sub_region_code, year, number)
    logger.debug("Reserved application id %s", application_id)
    return application_id


def realign_sequence(region_code: str, sub_region_code: str, now: datetime | None = None) -> int:
    """Raise the scope counter to the highest N already stored.

    Used after an application id collision, once the failed transaction has
    been rolled back. Does not commit. Returns the highest stored N.
    """
    year = two_digit_year(now)
    highest = max_existing_number(region_code, sub_region_code, year)
    result = db.session.execute(
        update(ApplicationSequence)
        .where(
            ApplicationSequence.region_code == region_code,
            ApplicationSequence.sub_region_code == sub_region_code,
            ApplicationSequence.year == year,
            ApplicationSequence.last_value < highest,
        )
        .values(last_value=highest)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.warning("Sequence %s/%s/%s realigned to %s", region_code, sub_region_code, year, highest)
    return highest
