"""Shared utility functions for services and blueprints.

parse_datetime:      ISO date / datetime input → aware datetime (raises on bad input)
clean_str:           trim-or-None normaliser for optional text fields
bounded_str:         clean_str plus a max-length check (ValidationError)
parse_pagination:    page/limit query params → bounded (page, limit)
paginate_select:     run a select() with count + offset/limit
"""
import logging
from datetime import date, datetime, timezone

from flask import current_app
from sqlalchemy import func, select

from sketchflow.core.exceptions import ValidationError
from sketchflow.models import db

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


def parse_datetime(value, field: str = "date"):
    """Parse an ISO date or datetime to a timezone-aware UTC datetime.

    Returns None for empty input. A bare date is taken as midnight UTC.
    Naive datetimes are assumed to be UTC.

    Raises:
        ValidationError: when the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(
                f"{field} must be an ISO-8601 date or datetime",
                details={field: "Invalid date"},
            ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def clean_str(value):
    """Return the trimmed string, or None when empty."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def bounded_str(value, field: str, max_length: int):
    """clean_str, rejecting values longer than the backing column."""
    text = clean_str(value)
    if text is not None and len(text) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters",
            details={field: f"Max {max_length} characters"},
        )
    return text


def _config_int(key: str, fallback: int) -> int:
    try:
        return int(current_app.config.get(key, fallback))
    except (RuntimeError, TypeError, ValueError):
        return fallback


def parse_pagination(args) -> tuple[int, int]:
    """Read ``page`` / ``limit`` from a mapping, clamping to sane bounds.

    page >= 1; 1 <= limit <= MAX_PAGE_LIMIT. Garbage input falls back to
    the defaults rather than failing the request.
    """
    default_limit = _config_int("DEFAULT_PAGE_LIMIT", DEFAULT_PAGE_LIMIT)
    max_limit = _config_int("MAX_PAGE_LIMIT", MAX_PAGE_LIMIT)
    try:
        page = max(int(args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        limit = int(args.get("limit", default_limit))
    except (ValueError, TypeError):
        limit = default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit


def paginate_select(stmt, page: int, limit: int) -> tuple[list, int]:
    """Execute ``stmt`` for one page.

    Returns:
        (items, total) where total counts every row ``stmt`` matches.
    """
    total = db.session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    items = db.session.execute(
        stmt.offset((page - 1) * limit).limit(limit)
    ).unique().scalars().all()
    return list(items), total


def page_payload(items: list[dict], total: int, page: int, limit: int) -> dict:
    """Standard list envelope."""
    return {"items": items, "total": total, "page": page, "limit": limit}
