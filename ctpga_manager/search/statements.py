"""
Translation of search specifications into SQLAlchemy statements.

A search specification maps API field names to conditions::

    {"title": {"$icontains": "math"},
     "progress": {"$gte": 10, "$lte": 50},
     "tags": {"$in": ["a", "b"]},
     "status": "pending"}

Field names are camelCase (``createdAt``) and resolve to the snake_case
attribute of the model (``created_at``). Fields the model does not have are
skipped. ``$and`` / ``$or`` keys hold lists of nested specifications.
"""
import re
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import and_, asc, desc, inspect, or_, true
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Column on relationship targets matched by "$in"
MEMBERSHIP_COLUMN = "name"


def attribute_name(field: str) -> str:
    """Map an API field name (camelCase) to a model attribute (snake_case)."""
    return _CAMEL_BOUNDARY.sub("_", field).lower()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _resolve(model, field: str):
    """Return ``(attribute, is_relationship)`` or ``(None, False)``."""
    mapper = inspect(model)
    for name in (field, attribute_name(field)):
        if name in mapper.relationships:
            return getattr(model, name), True
        if name in mapper.column_attrs:
            return getattr(model, name), False
    return None, False


def _bound_fits(attr, value: Any) -> bool:
    """Whether a range bound can be compared with the column it targets."""
    try:
        python_type = attr.type.python_type
    except (AttributeError, NotImplementedError):
        return True
    if issubclass(python_type, date):
        return isinstance(value, date)
    if issubclass(python_type, (int, float, Decimal)):
        return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)
    return True


def condition_for(model, field: str, condition: Any) -> Optional[ColumnElement]:
    """
    Build the SQL expression for one field condition.

    Returns:
        The expression, or None if the model has no such field

    Raises:
        ValueError: If the condition uses an unknown operator
    """
    attr, is_relationship = _resolve(model, field)
    if attr is None:
        return None

    if not isinstance(condition, Mapping):
        return attr == condition

    clauses = []
    for op, value in condition.items():
        if op == "$icontains":
            clauses.append(attr.ilike(f"%{_escape_like(str(value))}%", escape="\\"))
        elif op in ("$gte", "$lte"):
            # Bounds of the wrong type for the column are dropped
            if is_relationship or not _bound_fits(attr, value):
                continue
            clauses.append(attr >= value if op == "$gte" else attr <= value)
        elif op == "$in":
            values = list(value)
            if is_relationship:
                target = attr.property.mapper.class_
                clauses.append(attr.any(getattr(target, MEMBERSHIP_COLUMN).in_(values)))
            else:
                clauses.append(attr.in_(values))
        else:
            raise ValueError(f"Unsupported operator {op!r} for field {field!r}")
    return and_(*clauses) if clauses else None


def filter_clause(model, query: Mapping[str, Any]) -> ColumnElement:
    """Combine every condition of a search specification with AND."""
    clauses = []
    for field, condition in query.items():
        if field in ("$and", "$or"):
            nested = [filter_clause(model, sub) for sub in condition]
            if nested:
                clauses.append(and_(*nested) if field == "$and" else or_(*nested))
            continue
        clause = condition_for(model, field, condition)
        if clause is not None:
            clauses.append(clause)
    return and_(*clauses) if clauses else true()


def apply_search_query(stmt: Select, model, query: Mapping[str, Any]) -> Select:
    """Add the conditions of a search specification to a select statement."""
    if not query:
        return stmt
    return stmt.where(filter_clause(model, query))


def apply_sort(stmt: Select, model, sort: Dict[str, int]) -> Select:
    """
    Order a statement by a sort specification. Unknown fields are ignored.

    The primary key is always appended as the last sort key.
    """
    for field, direction in sort.items():
        attr, is_relationship = _resolve(model, field)
        if attr is None or is_relationship:
            continue
        stmt = stmt.order_by(asc(attr) if direction == 1 else desc(attr))
    return stmt.order_by(*inspect(model).primary_key)


def apply_pagination(stmt: Select, pagination) -> Select:
    return stmt.offset(pagination.skip).limit(pagination.limit)
