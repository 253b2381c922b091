from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from qbo_client.errors import ValidationError

QUERY_OPERATORS = ("=", "IN", "<", ">", "<=", ">=", "LIKE")
MAX_RESULTS = 1000

# Keys of a criteria mapping that shape the statement instead of filtering.
_CONTROL_KEYS = ("limit", "offset", "asc", "desc", "fetchAll", "count")

Criteria = Union[None, str, Mapping[str, Any], Sequence[Mapping[str, Any]]]


def quote(value: Any) -> str:
    """Render a literal for the QBO query language."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def _condition(field: str, value: Any, operator: Optional[str] = None) -> str:
    if operator is None:
        operator = "IN" if isinstance(value, (list, tuple, set)) else "="
    op = operator.upper()
    if op not in QUERY_OPERATORS:
        raise ValidationError(f"Unsupported query operator: {operator!r}")
    if op == "IN":
        values = value if isinstance(value, (list, tuple, set)) else [value]
        return f"{field} IN ({', '.join(quote(v) for v in values)})"
    return f"{field} {op} {quote(value)}"


def split_criteria(criteria: Criteria) -> Tuple[Criteria, Dict[str, Any]]:
    """Separate filter conditions from the control keys (limit, asc, ...)."""
    controls: Dict[str, Any] = {}
    if isinstance(criteria, Mapping):
        filters = {k: v for k, v in criteria.items() if k not in _CONTROL_KEYS}
        controls = {k: v for k, v in criteria.items() if k in _CONTROL_KEYS}
        return filters, controls
    if isinstance(criteria, (list, tuple)):
        filters_list: List[Mapping[str, Any]] = []
        for item in criteria:
            if item.get("field") in _CONTROL_KEYS:
                controls[item["field"]] = item.get("value")
            else:
                filters_list.append(item)
        return filters_list, controls
    return criteria, controls


def where_clause(criteria: Criteria) -> str:
    if not criteria:
        return ""
    if isinstance(criteria, str):
        text = criteria.strip()
        return text if text.lower().startswith("where ") else f"where {text}"
    if isinstance(criteria, Mapping):
        conditions = [_condition(k, v) for k, v in criteria.items()]
    else:
        conditions = []
        for item in criteria:
            if "field" not in item:
                raise ValidationError(f"Query criterion has no field: {item!r}")
            conditions.append(_condition(item["field"], item.get("value"), item.get("operator")))
    return "where " + " and ".join(conditions) if conditions else ""


def build_query(entity_key: str, criteria: Criteria = None, *, count: bool = False) -> str:
    """Build a QBO query statement.

    ``criteria`` may be a raw where-clause string, a ``{field: value}``
    mapping, or a list of ``{"field", "value", "operator"}`` dicts. The
    control keys ``limit``, ``offset``, ``asc``, ``desc`` and ``count`` map to
    ``maxresults``, ``startposition`` and ``orderby``.
    """
    filters, controls = split_criteria(criteria)
    count = count or bool(controls.get("count"))

    sql = f"select {'count(*)' if count else '*'} from {entity_key}"
    where = where_clause(filters)
    if where:
        sql += f" {where}"
    if count:
        return sql

    if controls.get("asc"):
        sql += f" orderby {controls['asc']} asc"
    elif controls.get("desc"):
        sql += f" orderby {controls['desc']} desc"
    if controls.get("offset"):
        sql += f" startposition {int(controls['offset'])}"
    if controls.get("limit"):
        sql += f" maxresults {int(controls['limit'])}"
    return sql


def with_page(criteria: Criteria, offset: int, limit: int) -> Criteria:
    """Copy ``criteria`` with the paging controls replaced."""
    filters, controls = split_criteria(criteria)
    controls = {k: v for k, v in controls.items() if k not in ("offset", "limit", "fetchAll")}
    controls.update({"offset": offset, "limit": limit})
    if isinstance(filters, str):
        if filters:
            raise ValidationError("fetchAll needs mapping or list criteria, not a raw where clause")
        filters = {}
    if isinstance(filters, Mapping) or filters is None:
        merged = dict(filters or {})
        merged.update(controls)
        return merged
    return list(filters) + [{"field": k, "value": v} for k, v in controls.items()]
