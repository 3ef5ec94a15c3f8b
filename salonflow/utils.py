from __future__ import annotations

from datetime import date, datetime, timezone

from flask import Request

MAX_PAGE_SIZE = 100


def parse_pagination(request: Request, default_limit: int = 20) -> tuple[int, int]:
    """Return ``(page, limit)`` from the query string; raises ValueError on junk."""
    page = max(1, int(request.args.get("page", 1)))
    limit = min(MAX_PAGE_SIZE, max(1, int(request.args.get("limit", default_limit))))
    return page, limit


def pagination_meta(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }


def parse_datetime(value: object) -> datetime:
    """Parse an ISO-8601 timestamp into a naive UTC datetime."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("expected an ISO-8601 datetime string")
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value: object) -> date:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("expected a YYYY-MM-DD date string")
    return date.fromisoformat(value.strip())


def parse_optional_date(value: object) -> date | None:
    if value in (None, ""):
        return None
    return parse_date(value)


def parse_cents(value: object, field: str, *, allow_none: bool = False) -> int | None:
    if value is None and allow_none:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{field} must be a non-negative integer")
    return value


def parse_percent(value: object, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 100:
        raise ValueError(f"{field} must be a number between 0 and 100")
    return int(value)


def utc_naive_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
