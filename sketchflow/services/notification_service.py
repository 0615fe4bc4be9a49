"""
Notification Service — fire-and-forget workflow events.

Delivery (SMS / email) is owned by an external sender. This service only
records that an event happened: callers never block on it and never branch
on its outcome. A failing sink is logged and swallowed so the workflow
transaction that triggered it is unaffected.

Events:
    sketch_request.created     submitter_id, application_id
    assignment.created         drafting_center_id, sketch_request_id
    assignment.accepted        drafting_center_id, operator_id
    assignment.rejected        drafting_center_id, operator_id
    assignment.status_changed  old_status, new_status
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Optional external sinks, e.g. a queue publisher wired at startup
_sinks: list[Callable[[str, dict], None]] = []


def register_sink(sink: Callable[[str, dict], None]) -> None:
    _sinks.append(sink)


def clear_sinks() -> None:
    _sinks.clear()


def notify(event: str, **context: Any) -> None:
    """Publish ``event`` to the log and every registered sink."""
    logger.info("notify %s %s", event, context)
    for sink in list(_sinks):
        try:
            sink(event, context)
        except Exception:
            # Delivery is best-effort; the workflow has already committed
            logger.exception("Notification sink failed for event=%s", event)
