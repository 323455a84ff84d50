"""
WIQL query builder.

Translates a QuerySpec into Work Item Query Language text. Every literal
is quoted and escaped here; callers never splice strings into WIQL.
"""

import math
import re
from typing import Any, Iterable

from backlog_sync.workitem.config import FieldMap
from backlog_sync.workitem.errors import InvalidSpec
from backlog_sync.workitem.types import QuerySpec

# Reference names like System.Title or Custom.Team_Rank
FIELD_REFERENCE = re.compile(r"^[A-Za-z][A-Za-z0-9_.]*$")


def quote_literal(value: Any) -> str:
    """
    Render a WIQL literal.

    Strings are single-quoted with embedded quotes doubled. Numbers and
    booleans are emitted bare; NaN and infinities are rejected.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise InvalidSpec(f"Non-finite number in query: {value!r}")
        return repr(value)
    text = str(value).replace("'", "''")
    return f"'{text}'"


def _field(name: str) -> str:
    if not FIELD_REFERENCE.match(name or ""):
        raise InvalidSpec(f"Invalid field reference: {name!r}", field=name)
    return f"[{name}]"


def _in_list(values: Iterable[Any]) -> str:
    return "(" + ", ".join(quote_literal(v) for v in values) + ")"


def _check_allowed(name: str, allowed_fields: Iterable[str] | None) -> None:
    if allowed_fields is not None and name not in allowed_fields:
        raise InvalidSpec(f"Unknown field in filter: {name}", field=name)


def build_query(
    spec: QuerySpec,
    fields: FieldMap | None = None,
    allowed_fields: Iterable[str] | None = None,
) -> str:
    """
    Build WIQL text for a backlog view.

    The SELECT list is always id, type, title, state and the order field.
    Anything else comes from a follow-up detail fetch.

    Args:
        spec: Filter specification
        fields: Field reference mapping for the process template
        allowed_fields: Optional allow-list for extra filter and sort fields

    Returns:
        WIQL query text

    Raises:
        InvalidSpec: Empty project, unknown or malformed field name
    """
    fields = fields or FieldMap()
    if allowed_fields is not None:
        allowed_fields = set(allowed_fields)

    if not spec.project or not spec.project.strip():
        raise InvalidSpec("QuerySpec.project is required", field="project")

    select = ", ".join(
        _field(name)
        for name in (fields.id, fields.work_item_type, fields.title, fields.state, fields.order)
    )

    clauses = [f"{_field(fields.project)} = {quote_literal(spec.project)}"]

    if spec.work_item_types:
        clauses.append(f"{_field(fields.work_item_type)} IN {_in_list(spec.work_item_types)}")

    if spec.states:
        if len(spec.states) == 1:
            clauses.append(f"{_field(fields.state)} = {quote_literal(spec.states[0])}")
        else:
            clauses.append(f"{_field(fields.state)} IN {_in_list(spec.states)}")

    if spec.iteration_path:
        clauses.append(f"{_field(fields.iteration_path)} UNDER {quote_literal(spec.iteration_path)}")

    if spec.area_path:
        clauses.append(f"{_field(fields.area_path)} UNDER {quote_literal(spec.area_path)}")

    for tag in spec.tags or []:
        clauses.append(f"{_field(fields.tags)} CONTAINS {quote_literal(tag)}")

    if spec.assignee:
        clauses.append(f"{_field(fields.assignee)} = {quote_literal(spec.assignee)}")

    for name, value in spec.filters.items():
        _check_allowed(name, allowed_fields)
        if isinstance(value, (list, tuple, set)):
            clauses.append(f"{_field(name)} IN {_in_list(value)}")
        else:
            clauses.append(f"{_field(name)} = {quote_literal(value)}")

    sort_key = spec.sort_key or fields.order
    if spec.sort_key:
        _check_allowed(sort_key, allowed_fields)

    query = f"SELECT {select} FROM WorkItems WHERE " + " AND ".join(clauses)
    query += f" ORDER BY {_field(sort_key)} ASC"
    if sort_key != fields.id:
        # Stable tie-break so equal ranks still order totally
        query += f", {_field(fields.id)} ASC"

    return query
