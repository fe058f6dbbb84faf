"""In-memory JSON document store with json-server style resource semantics.

A tenant document is a JSON object whose top-level keys are resources:
- a list value is a collection of records addressed by their ``id``
- an object value is a singular resource read and written as a whole

All mutating operations build the new value first and then assign it, so a
failing operation leaves the document untouched.
"""

from __future__ import annotations

import copy
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Any, Iterable

from app.core.errors import ConflictAppError, NotFoundAppError, ValidationAppError

logger = logging.getLogger(__name__)

JsonObject = dict[str, Any]

RESERVED_QUERY_PARAMS = frozenset(
    {"_sort", "_order", "_start", "_end", "_limit", "_page", "q", "_embed", "_expand"}
)
DEFAULT_PAGE_SIZE = 10

_MISSING = object()


@dataclass(frozen=True)
class ListResult:
    """Records selected by a collection query.

    Attributes:
        items: Records after filtering, sorting and slicing.
        total: Count before slicing; None when no slicing was requested.
    """

    items: list[JsonObject]
    total: int | None = None


def _get_path(record: Any, path: str) -> Any:
    current = record
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _sort_key(value: Any) -> tuple[int, float, str]:
    if value is _MISSING or value is None:
        return (2, 0.0, "")
    number = _as_number(value) if not isinstance(value, str) else None
    if number is not None:
        return (0, number, "")
    return (1, 0.0, _as_text(value))


def _contains_text(value: Any, needle: str) -> bool:
    if isinstance(value, dict):
        return any(_contains_text(v, needle) for v in value.values())
    if isinstance(value, list):
        return any(_contains_text(v, needle) for v in value)
    if isinstance(value, str):
        return needle in value.lower()
    return False


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValidationAppError(
            code="invalid_query",
            message=f"Query parameter {name} must be an integer",
            details={"context": {"param": name, "value": raw}},
        ) from None


def _matches(record: JsonObject, key: str, values: list[str]) -> bool:
    for suffix in ("_ne", "_like", "_gte", "_lte"):
        if key.endswith(suffix):
            field = key[: -len(suffix)]
            actual = _get_path(record, field)
            if actual is _MISSING:
                return suffix == "_ne"
            return all(_compare(suffix, actual, expected) for expected in values)

    actual = _get_path(record, key)
    if actual is _MISSING:
        return False
    return any(_as_text(actual) == expected for expected in values)


def _compare(operator: str, actual: Any, expected: str) -> bool:
    if operator == "_ne":
        return _as_text(actual) != expected
    if operator == "_like":
        try:
            return re.search(expected, _as_text(actual), re.IGNORECASE) is not None
        except re.error:
            raise ValidationAppError(
                code="invalid_query",
                message="Invalid _like pattern",
                details={"context": {"pattern": expected}},
            ) from None

    left, right = _as_number(actual), _as_number(expected)
    if left is None or right is None:
        left_text, right_text = _as_text(actual), expected
        return left_text >= right_text if operator == "_gte" else left_text <= right_text
    return left >= right if operator == "_gte" else left <= right


def _ensure_object(body: Any) -> JsonObject:
    if not isinstance(body, dict):
        raise ValidationAppError(
            code="invalid_body",
            message="Request body must be a JSON object",
        )
    return body


def _scalar_resource(name: str) -> ValidationAppError:
    return ValidationAppError(
        code="invalid_resource",
        message=f"Resource '{name}' holds a plain value and cannot be written as a collection or object",
        details={"resource": name},
    )


class DocumentStore:
    """One tenant's working copy of its JSON document."""

    def __init__(self, data: JsonObject) -> None:
        self._data = data

    def snapshot(self) -> JsonObject:
        """Deep copy of the full document, detached from later mutations."""
        return copy.deepcopy(self._data)

    def resource_names(self) -> list[str]:
        return list(self._data)

    def _resource(self, name: str) -> Any:
        if name not in self._data:
            raise NotFoundAppError(
                code="resource_not_found",
                message=f"Resource '{name}' does not exist",
                details={"resource": name},
            )
        return self._data[name]

    def _collection(self, name: str) -> list[JsonObject]:
        resource = self._resource(name)
        if not isinstance(resource, list):
            raise NotFoundAppError(
                code="resource_not_found",
                message=f"Resource '{name}' is not a collection",
                details={"resource": name},
            )
        return resource

    def _singular(self, name: str) -> JsonObject:
        resource = self._resource(name)
        if isinstance(resource, list):
            raise NotFoundAppError(
                code="resource_not_found",
                message=f"Resource '{name}' is a collection; address a record by id",
                details={"resource": name},
            )
        if not isinstance(resource, dict):
            raise _scalar_resource(name)
        return resource

    def _index_of(self, name: str, collection: list[JsonObject], record_id: str) -> int:
        for index, record in enumerate(collection):
            if isinstance(record, dict) and _as_text(record.get("id")) == record_id:
                return index
        raise NotFoundAppError(
            code="record_not_found",
            message=f"Record '{record_id}' not found in '{name}'",
            details={"resource": name, "record_id": record_id},
        )

    def is_collection(self, name: str) -> bool:
        return isinstance(self._data.get(name), list)

    # Reads

    def read(self, name: str) -> Any:
        """Return a singular resource or a whole collection."""
        return copy.deepcopy(self._resource(name))

    def list_records(self, name: str, query: Iterable[tuple[str, str]] = ()) -> ListResult:
        """Filter, sort and slice a collection.

        Args:
            name: Collection name.
            query: Query string pairs; repeated keys are OR-ed for equality
                filters and AND-ed for operator filters.

        Returns:
            ListResult with deep-copied records.
        """
        collection = self._collection(name)

        filters: dict[str, list[str]] = {}
        options: dict[str, str] = {}
        for key, value in query:
            if key in RESERVED_QUERY_PARAMS:
                options[key] = value
            else:
                filters.setdefault(key, []).append(value)

        items = [
            record
            for record in collection
            if isinstance(record, dict)
            and all(_matches(record, key, values) for key, values in filters.items())
        ]

        needle = options.get("q")
        if needle:
            items = [record for record in items if _contains_text(record, needle.lower())]

        if options.get("_sort"):
            fields = [f.strip() for f in options["_sort"].split(",") if f.strip()]
            orders = [o.strip().lower() for o in options.get("_order", "").split(",")]
            # Stable sorts applied from the least significant field up
            for position in reversed(range(len(fields))):
                descending = position < len(orders) and orders[position] == "desc"
                field = fields[position]
                items.sort(key=lambda r: _sort_key(_get_path(r, field)), reverse=descending)

        total: int | None = None
        if "_page" in options:
            page = max(1, _parse_int("_page", options["_page"]))
            size = _parse_int("_limit", options["_limit"]) if "_limit" in options else DEFAULT_PAGE_SIZE
            total = len(items)
            start = (page - 1) * size
            items = items[start : start + max(0, size)]
        elif {"_start", "_end", "_limit"} & options.keys():
            start = _parse_int("_start", options["_start"]) if "_start" in options else 0
            if "_end" in options:
                end: int | None = _parse_int("_end", options["_end"])
            elif "_limit" in options:
                end = start + _parse_int("_limit", options["_limit"])
            else:
                end = None
            total = len(items)
            items = items[start:end]

        return ListResult(items=copy.deepcopy(items), total=total)

    def get_record(self, name: str, record_id: str) -> JsonObject:
        collection = self._collection(name)
        return copy.deepcopy(collection[self._index_of(name, collection, record_id)])

    # Writes

    def _next_id(self, collection: list[JsonObject]) -> Any:
        ids = [record.get("id") for record in collection if isinstance(record, dict)]
        if not ids:
            return 1
        if all(isinstance(i, int) and not isinstance(i, bool) for i in ids):
            return max(ids) + 1
        return secrets.token_urlsafe(6)[:7]

    def create(self, name: str, body: Any) -> JsonObject:
        """Add a record to a collection, or replace a singular resource.

        Posting to an unknown resource creates it as a collection.

        Raises:
            ValidationAppError: If the body is not an object, or the resource
                holds a plain value.
            ConflictAppError: If the body's id already exists.
        """
        payload = _ensure_object(body)

        existing = self._data.get(name)
        if isinstance(existing, dict):
            self._data[name] = copy.deepcopy(payload)
            return copy.deepcopy(payload)
        if existing is not None and not isinstance(existing, list):
            raise _scalar_resource(name)

        collection: list[JsonObject] = existing if existing is not None else []
        if "id" in payload and payload["id"] is not None:
            record_id = _as_text(payload["id"])
            if any(
                isinstance(r, dict) and _as_text(r.get("id")) == record_id for r in collection
            ):
                raise ConflictAppError(
                    code="duplicate_id",
                    message=f"Record '{record_id}' already exists in '{name}'",
                    details={"resource": name, "record_id": record_id},
                )
            record = copy.deepcopy(payload)
        else:
            record = {"id": self._next_id(collection)}
            record.update((k, v) for k, v in copy.deepcopy(payload).items() if k != "id")

        if existing is None:
            self._data[name] = [record]
        else:
            collection.append(record)
        return copy.deepcopy(record)

    def replace(self, name: str, record_id: str, body: Any) -> JsonObject:
        payload = _ensure_object(body)
        collection = self._collection(name)
        index = self._index_of(name, collection, record_id)
        record = {**copy.deepcopy(payload), "id": collection[index].get("id")}
        collection[index] = record
        return copy.deepcopy(record)

    def patch(self, name: str, record_id: str, body: Any) -> JsonObject:
        payload = _ensure_object(body)
        collection = self._collection(name)
        index = self._index_of(name, collection, record_id)
        record = {**collection[index], **copy.deepcopy(payload), "id": collection[index].get("id")}
        collection[index] = record
        return copy.deepcopy(record)

    def replace_singular(self, name: str, body: Any) -> JsonObject:
        payload = _ensure_object(body)
        self._singular(name)
        self._data[name] = copy.deepcopy(payload)
        return copy.deepcopy(payload)

    def patch_singular(self, name: str, body: Any) -> JsonObject:
        payload = _ensure_object(body)
        merged = {**self._singular(name), **copy.deepcopy(payload)}
        self._data[name] = merged
        return copy.deepcopy(merged)

    def delete(self, name: str, record_id: str) -> None:
        collection = self._collection(name)
        index = self._index_of(name, collection, record_id)
        del collection[index]
