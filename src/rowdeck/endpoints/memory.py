"""In-memory resource backend with server-side search, sort, filter and paging."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from rowdeck.errors import InvalidArgument, NotFound
from rowdeck.models import Entity, EntitySchema
from rowdeck.types import Filter, Page, QueryDescriptor, SortDirection

E = TypeVar("E", bound=Entity)


def _plain(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def _sort_key(entity: Entity, field: str) -> tuple[bool, Any]:
    value = _plain(getattr(entity, field, None))
    return (value is None, "" if value is None else value)


def _coerce(actual: Any, expected: Any, flt: Filter) -> Any:
    """Convert a filter value (often its query-string form) to the field's type."""
    if actual is None:
        return expected
    if isinstance(actual, str):
        return str(expected)
    try:
        if isinstance(actual, bool):
            text = str(expected).lower()
            if text not in ("true", "false"):
                raise ValueError(expected)
            return text == "true"
        if isinstance(actual, (int, float)):
            if isinstance(expected, (int, float)) and not isinstance(expected, bool):
                return expected
            return float(expected)
        if isinstance(actual, datetime) and not isinstance(expected, datetime):
            return datetime.fromisoformat(str(expected))
    except (TypeError, ValueError) as e:
        raise InvalidArgument(
            f"Filter value {expected!r} does not fit field {flt.field!r}"
        ) from e
    return expected


def _matches(entity: Entity, flt: Filter) -> bool:
    actual = _plain(getattr(entity, flt.field, None))
    if flt.operator == "in":
        values = flt.value.split(",") if isinstance(flt.value, str) else flt.value
        if not isinstance(values, (list, tuple, set, frozenset)):
            values = (values,)
        return actual in tuple(_coerce(actual, v, flt) for v in values)
    if flt.operator == "contains":
        return str(flt.value).lower() in str(actual).lower()
    expected = _coerce(actual, flt.value, flt)
    if flt.operator == "eq":
        return actual == expected
    if actual is None:
        return False
    try:
        if flt.operator == "gt":
            return actual > expected
        if flt.operator == "lt":
            return actual < expected
        if flt.operator == "gte":
            return actual >= expected
        if flt.operator == "lte":
            return actual <= expected
    except TypeError as e:
        raise InvalidArgument(
            f"Cannot compare {flt.field!r} with {flt.value!r}"
        ) from e
    return False


class MemoryBackend(Generic[E]):
    """Async in-memory backend, useful for demos and tests."""

    def __init__(self, schema: EntitySchema[E], items: Iterable[E] = ()) -> None:
        self._schema = schema
        self._items: dict[str, E] = {item.id: item for item in items}
        self._ids = itertools.count(len(self._items) + 1)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._items)

    async def list(self, descriptor: QueryDescriptor) -> Page[E]:
        async with self._lock:
            rows = list(self._items.values())

        if descriptor.search_text:
            needle = descriptor.search_text.lower()
            rows = [
                row
                for row in rows
                if any(
                    needle in str(_plain(v)).lower()
                    for v in row.model_dump().values()
                    if isinstance(_plain(v), str)
                )
            ]
        for flt in descriptor.filters:
            rows = [row for row in rows if _matches(row, flt)]
        if descriptor.sort_field:
            field = descriptor.sort_field
            rows.sort(
                key=lambda row: _sort_key(row, field),
                reverse=descriptor.sort_direction is SortDirection.DESC,
            )

        # Out-of-range pages come back empty; clamping is the client's job
        size = descriptor.page_size
        start = (descriptor.page - 1) * size
        return Page(
            items=tuple(rows[start : start + size]),
            page=descriptor.page,
            page_size=size,
            total=len(rows),
        )

    async def get(self, id: str) -> E:
        async with self._lock:
            try:
                return self._items[id]
            except KeyError:
                raise NotFound(f"{self._schema.resource}/{id}") from None

    async def create(self, draft: BaseModel) -> E:
        now = datetime.now(tz=timezone.utc)
        async with self._lock:
            entity_id = f"{self._schema.resource}-{next(self._ids)}"
            while entity_id in self._items:
                entity_id = f"{self._schema.resource}-{next(self._ids)}"
            data = dict(draft.model_dump(), id=entity_id)
            if "created_at" in self._schema.model.model_fields:
                data.update(created_at=now, updated_at=now)
            entity = self._schema.parse(data)
            self._items[entity.id] = entity
            return entity

    async def update(self, id: str, patch: BaseModel) -> E:
        async with self._lock:
            if id not in self._items:
                raise NotFound(f"{self._schema.resource}/{id}")
            entity = self._schema.apply_patch(self._items[id], patch)
            if "updated_at" in self._schema.model.model_fields:
                entity = entity.model_copy(
                    update={"updated_at": datetime.now(tz=timezone.utc)}
                )
            self._items[id] = entity
            return entity

    async def delete(self, id: str) -> None:
        async with self._lock:
            if self._items.pop(id, None) is None:
                raise NotFound(f"{self._schema.resource}/{id}")


__all__ = ["MemoryBackend"]
