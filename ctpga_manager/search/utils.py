"""
Utility functions for advanced search functionality.

The builders are pure: they read request query parameters and return plain
values describing the filter, pagination and sort of a list request. Missing
or malformed parameters never raise, they simply produce no condition.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from ctpga_manager.search.statements import apply_search_query

ASCENDING = 1
DESCENDING = -1

DEFAULT_LIMIT = 10
DEFAULT_SORT_FIELD = "createdAt"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_NUMBER = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)\s*$")


class Pagination(NamedTuple):
    page: int
    limit: int
    skip: int


def _is_present(value: Any) -> bool:
    return value is not None and value != "" and value != [] and value != ()


def _get(params: Mapping[str, Any], key: str) -> Any:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        return value[-1] if value else None
    return value


def _get_list(params: Mapping[str, Any], key: str) -> List[Any]:
    """Read every value of a parameter, from a multi-dict or a plain mapping."""
    if hasattr(params, "getlist"):
        raw: Iterable[Any] = params.getlist(key)
    else:
        value = params.get(key)
        raw = value if isinstance(value, (list, tuple)) else [value]
    return [v for v in raw if _is_present(v)]


def _parse_number(value: Any) -> Optional[Any]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and _NUMBER.match(value):
        number = float(value)
        return int(number) if number.is_integer() and "." not in value else number
    return None


def _parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime into naive UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _range_bound(value: Any) -> Optional[Any]:
    number = _parse_number(value)
    if number is not None:
        return number
    return _parse_date(value)


def _capitalize(field: str) -> str:
    return field[:1].upper() + field[1:]


def build_search_query(
    params: Mapping[str, Any],
    text_fields: Sequence[str] = (),
    exact_fields: Sequence[str] = (),
    range_fields: Sequence[str] = (),
    array_fields: Sequence[str] = (),
) -> Dict[str, Any]:
    """
    Creates a search specification based on query parameters.

    Args:
        params: Request query parameters
        text_fields: Fields matched by case-insensitive substring
        exact_fields: Fields that require exact matching
        range_fields: Fields filtered by ``min<Field>`` / ``max<Field>``
        array_fields: Fields matched against any of several values

    Returns:
        Dict mapping field names to conditions. Only declared fields appear.
    """
    query: Dict[str, Any] = {}

    for field in text_fields:
        value = _get(params, field)
        if _is_present(value):
            query[field] = {"$icontains": str(value)}

    for field in exact_fields:
        value = _get(params, field)
        if _is_present(value):
            query[field] = value

    for field in range_fields:
        low = _range_bound(_get(params, f"min{_capitalize(field)}"))
        high = _range_bound(_get(params, f"max{_capitalize(field)}"))
        if low is None and high is None:
            continue
        condition = {}
        if low is not None:
            condition["$gte"] = low
        if high is not None:
            condition["$lte"] = high
        query[field] = condition

    # The creation window is independent of the declared range fields
    start = _parse_date(_get(params, "startDate"))
    end = _parse_date(_get(params, "endDate"))
    if start is not None or end is not None:
        window = {}
        if start is not None:
            window["$gte"] = start
        if end is not None:
            window["$lte"] = end
        query[DEFAULT_SORT_FIELD] = window

    for field in array_fields:
        values = _get_list(params, field)
        if values:
            query[field] = {"$in": values}

    return query


def _parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return None


def build_pagination_options(params: Mapping[str, Any], default_limit: int = DEFAULT_LIMIT) -> Pagination:
    """
    Builds pagination options from ``page`` and ``limit``.

    Absent, non-numeric or non-positive values fall back to page 1 and
    ``default_limit``.
    """
    page = _parse_int(_get(params, "page"))
    limit = _parse_int(_get(params, "limit"))
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else default_limit
    return Pagination(page=page, limit=limit, skip=(page - 1) * limit)


def build_sort_options(
    params: Mapping[str, Any],
    default_field: str = DEFAULT_SORT_FIELD,
    default_order: int = DESCENDING,
) -> Dict[str, int]:
    """Builds a single ``{field: direction}`` sort specification."""
    sort_by = _get(params, "sortBy")
    if _is_present(sort_by):
        return {str(sort_by): ASCENDING if _get(params, "sortOrder") == "asc" else DESCENDING}
    return {default_field: default_order}


def build_full_text_statement(
    model,
    search_term: Optional[str],
    fields: Sequence[str],
    additional_query: Optional[Mapping[str, Any]] = None,
) -> Select:
    """Select statement for ``perform_full_text_search``, before execution."""
    additional_query = dict(additional_query or {})
    if not search_term or not fields:
        return apply_search_query(select(model), model, additional_query)

    query = {
        "$and": [
            {"$or": [{field: {"$icontains": search_term}} for field in fields]},
            additional_query,
        ]
    }
    return apply_search_query(select(model), model, query)


async def perform_full_text_search(
    db: AsyncSession,
    model,
    search_term: Optional[str],
    fields: Sequence[str],
    additional_query: Optional[Mapping[str, Any]] = None,
) -> list:
    """
    Performs a full-text search across multiple fields.

    Args:
        db: Database session
        model: Mapped class to search
        search_term: Text to search for; empty returns every matching row
        fields: Fields to include in the search
        additional_query: Additional conditions ANDed with the search

    Returns:
        List of matching model instances
    """
    stmt = build_full_text_statement(model, search_term, fields, additional_query)
    result = await db.execute(stmt)
    return list(result.scalars().all())
