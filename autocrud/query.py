"""Query-string interpretation and MongoDB-style query evaluation.

``resolve_query_intent`` turns the query string of a list request into the
page window, filter and sort handed to the resource accessor.
``QueryEngine`` evaluates the same filters, sorts, projections and updates
against plain dictionaries for accessors that keep documents in memory.
"""

import re
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .config import AutoCrudOptions

RESERVED_PARAMS = ("page", "limit", "sort")
DESCENDING_MARKER = "-"
OPERATOR_PREFIX = "$"

_LEADING_INT = re.compile(r"^\s*([+-]?)(0[xX][0-9a-fA-F]+|\d+)")

SortSpec = Union[str, Mapping[str, Any], Iterable[Tuple[str, Any]], None]


@dataclass(frozen=True)
class QueryIntent:
    """Resolved list parameters for a single request."""

    page: int
    limit: int
    filter: Dict[str, Any] = field(default_factory=dict)
    sort: str = ""

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def parse_int(value: Any) -> Optional[int]:
    """Parse the leading integer of a query-string value.

    ``"12"`` and ``"12abc"`` both give 12, ``"1.9"`` gives 1 and ``"0x10"``
    gives 16. Returns None when the value does not start with an integer.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    sign, digits = match.groups()
    number = int(digits[2:], 16) if digits[:2].lower() == "0x" else int(digits)
    return -number if sign == "-" else number


def _params_to_dict(params: Mapping[str, Any]) -> Dict[str, Any]:
    # Starlette's QueryParams keeps repeated keys; collapse them into lists.
    if hasattr(params, "multi_items"):
        result: Dict[str, Any] = {}
        for key, value in params.multi_items():
            if key in result:
                existing = result[key]
                result[key] = (
                    existing + [value] if isinstance(existing, list) else [existing, value]
                )
            else:
                result[key] = value
        return result
    return dict(params)


def resolve_page(params: Mapping[str, Any]) -> int:
    page = parse_int(params.get("page"))
    return max(1, page or 1)


def resolve_limit(params: Mapping[str, Any], options: AutoCrudOptions) -> int:
    """Resolve the page size, capped at the configured maximum.

    Zero or a missing/non-numeric value gives the default limit. Negative
    values are passed through unchanged.
    """
    pagination = options.pagination
    requested = parse_int(params.get("limit")) or pagination.default_limit
    return min(pagination.max_limit, requested)


def build_filter(params: Mapping[str, Any], options: AutoCrudOptions) -> Dict[str, Any]:
    """Build the equality filter from the non-reserved query-string keys.

    Keys starting with ``$`` (query operators such as ``$where``) are dropped,
    even when listed in the allowed set.
    """
    if not options.filter.enabled:
        return {}
    allowed = options.filter.allowed
    return {
        key: value
        for key, value in _params_to_dict(params).items()
        if key not in RESERVED_PARAMS
        and not key.startswith(OPERATOR_PREFIX)
        and (not allowed or key in allowed)
    }


def resolve_sort(params: Mapping[str, Any], options: AutoCrudOptions) -> str:
    requested = params.get("sort")
    if not requested:
        return options.sort.default
    requested = str(requested)
    sort_field = (
        requested[len(DESCENDING_MARKER) :]
        if requested.startswith(DESCENDING_MARKER)
        else requested
    )
    allowed = options.sort.allowed
    if allowed and sort_field not in allowed:
        return options.sort.default
    return requested


def resolve_query_intent(
    params: Mapping[str, Any], options: AutoCrudOptions
) -> QueryIntent:
    """Derive the list parameters for one request.

    Args:
        params: Query-string parameters (mapping or Starlette QueryParams)
        options: Normalized route options

    Returns:
        QueryIntent with page, limit, filter and sort resolved
    """
    return QueryIntent(
        page=resolve_page(params),
        limit=resolve_limit(params, options),
        filter=build_filter(params, options),
        sort=resolve_sort(params, options),
    )


def _direction(value: Any) -> int:
    if isinstance(value, str):
        return -1 if value.lower() in ("-1", "desc", "descending") else 1
    return -1 if value is not None and int(value) < 0 else 1


def parse_sort(spec: SortSpec) -> List[Tuple[str, int]]:
    """Convert a sort specification into ordered ``(field, direction)`` pairs.

    Accepts Mongoose-style strings (``"-createdAt name +age"``), mappings of
    field to direction, or sequences of pairs. Directions are 1 or -1.
    """
    if not spec:
        return []
    if isinstance(spec, str):
        pairs = []
        for token in spec.split():
            if token.startswith("-"):
                pairs.append((token[1:], -1))
            elif token.startswith("+"):
                pairs.append((token[1:], 1))
            else:
                pairs.append((token, 1))
        return [(name, direction) for name, direction in pairs if name]
    items = spec.items() if isinstance(spec, Mapping) else spec
    return [(name, _direction(direction)) for name, direction in items]


class QueryEngine:
    """MongoDB-style evaluation over plain dictionaries."""

    @staticmethod
    def get_field_value(document: Dict[str, Any], field: str) -> Any:
        """Get a field value, supporting dot notation for nested fields.

        Returns:
            Field value or None if any path segment is missing
        """
        if not field:
            return None
        current: Any = document
        for key in field.split("."):
            if isinstance(current, dict):
                if key not in current:
                    return None
                current = current[key]
            elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
                current = current[int(key)]
            else:
                return None
        return current

    @staticmethod
    def set_field_value(document: Dict[str, Any], field: str, value: Any) -> None:
        keys = field.split(".")
        current = document
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    @staticmethod
    def unset_field_value(document: Dict[str, Any], field: str) -> None:
        keys = field.split(".")
        current: Any = document
        for key in keys[:-1]:
            current = current.get(key) if isinstance(current, dict) else None
            if current is None:
                return
        if isinstance(current, dict):
            current.pop(keys[-1], None)

    @staticmethod
    def match(document: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
        """Check whether a document satisfies a filter.

        Supports implicit equality, ``$and``/``$or``/``$nor`` and the field
        operators handled by ``_match_value``. A list-valued field matches an
        equality condition when any element matches, as in MongoDB.
        """
        if not query:
            return True
        for key, condition in query.items():
            if key == "$and":
                if not all(QueryEngine.match(document, sub) for sub in condition):
                    return False
            elif key == "$or":
                if not any(QueryEngine.match(document, sub) for sub in condition):
                    return False
            elif key == "$nor":
                if any(QueryEngine.match(document, sub) for sub in condition):
                    return False
            else:
                value = QueryEngine.get_field_value(document, key)
                if not QueryEngine._match_value(value, condition):
                    return False
        return True

    @staticmethod
    def _equals(value: Any, expected: Any) -> bool:
        if isinstance(value, list) and not isinstance(expected, list):
            return expected in value
        return value == expected

    @staticmethod
    def _match_value(value: Any, condition: Any) -> bool:
        if isinstance(condition, list) and not isinstance(value, list):
            # Repeated query-string keys arrive as lists: match any of them.
            return value in condition
        if not isinstance(condition, dict) or not any(
            str(op).startswith("$") for op in condition
        ):
            return QueryEngine._equals(value, condition)

        for op, operand in condition.items():
            if op == "$eq":
                matched = QueryEngine._equals(value, operand)
            elif op == "$ne":
                matched = not QueryEngine._equals(value, operand)
            elif op in ("$gt", "$gte", "$lt", "$lte"):
                try:
                    matched = value is not None and {
                        "$gt": value > operand,
                        "$gte": value >= operand,
                        "$lt": value < operand,
                        "$lte": value <= operand,
                    }[op]
                except TypeError:
                    matched = False
            elif op == "$in":
                matched = any(QueryEngine._equals(value, item) for item in operand)
            elif op == "$nin":
                matched = not any(QueryEngine._equals(value, item) for item in operand)
            elif op == "$exists":
                matched = bool(operand) == (value is not None)
            elif op == "$regex":
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                matched = isinstance(value, str) and re.search(operand, value, flags) is not None
            elif op == "$options":
                matched = True
            else:
                matched = False
            if not matched:
                return False
        return True

    @staticmethod
    def sort(
        documents: List[Dict[str, Any]], spec: SortSpec
    ) -> List[Dict[str, Any]]:
        """Return the documents ordered by a sort specification.

        Missing values sort before present ones, as in MongoDB ascending order.
        """
        pairs = parse_sort(spec)
        if not pairs:
            return list(documents)

        def compare(left: Dict[str, Any], right: Dict[str, Any]) -> int:
            for name, direction in pairs:
                a = QueryEngine.get_field_value(left, name)
                b = QueryEngine.get_field_value(right, name)
                if a == b:
                    continue
                if a is None:
                    result = -1
                elif b is None:
                    result = 1
                else:
                    try:
                        result = -1 if a < b else 1
                    except TypeError:
                        result = -1 if str(a) < str(b) else 1
                return result * direction
            return 0

        return sorted(documents, key=cmp_to_key(compare))

    @staticmethod
    def project(
        document: Dict[str, Any], projection: Optional[Mapping[str, Any]]
    ) -> Dict[str, Any]:
        """Apply an inclusion or exclusion mask to a document.

        An inclusion mask keeps the listed top-level fields and ``_id``
        unless ``_id`` is explicitly excluded. An exclusion mask drops the
        listed fields.
        """
        if not projection:
            return dict(document)
        include_id = bool(projection.get("_id", 1))
        fields = {name: bool(flag) for name, flag in projection.items() if name != "_id"}
        if any(fields.values()):
            result = {name: document[name] for name in fields if name in document}
            if include_id and "_id" in document:
                result = {"_id": document["_id"], **result}
            return result
        result = {name: value for name, value in document.items() if name not in fields}
        if not include_id:
            result.pop("_id", None)
        return result

    @staticmethod
    def apply_update(document: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Apply ``$set``, ``$unset``, ``$inc``, ``$push`` and ``$addToSet``.

        Returns:
            The modified document
        """
        for op, payload in (update or {}).items():
            if op == "$set":
                for name, value in payload.items():
                    QueryEngine.set_field_value(document, name, value)
            elif op == "$unset":
                for name in payload:
                    QueryEngine.unset_field_value(document, name)
            elif op == "$inc":
                for name, amount in payload.items():
                    current = QueryEngine.get_field_value(document, name) or 0
                    QueryEngine.set_field_value(document, name, current + amount)
            elif op in ("$push", "$addToSet"):
                for name, item in payload.items():
                    items = list(QueryEngine.get_field_value(document, name) or [])
                    if op == "$push" or item not in items:
                        items.append(item)
                    QueryEngine.set_field_value(document, name, items)
        return document


def to_update_document(data: Dict[str, Any]) -> Dict[str, Any]:
    """Treat plain field assignments as ``$set``, as Mongoose does.

    Operator keys (``$inc`` etc.) are kept; plain keys are gathered into
    ``$set``, merged with any explicit ``$set``.
    """
    operators = {key: value for key, value in data.items() if key.startswith("$")}
    fields = {key: value for key, value in data.items() if not key.startswith("$")}
    if fields:
        operators["$set"] = {**operators.get("$set", {}), **fields}
    return operators
