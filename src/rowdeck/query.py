"""Query state: paging, sorting, filtering and debounced search for one collection."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import fields, replace
from typing import Any

from rowdeck.duration import to_seconds
from rowdeck.errors import InvalidArgument
from rowdeck.signals import Signal
from rowdeck.types import Duration, Filter, QueryDescriptor, SortDirection

logger = logging.getLogger(__name__)

_FIELDS = frozenset(f.name for f in fields(QueryDescriptor))
# Changing any of these changes the result set, so the paging position resets
_RESULT_SET_FIELDS = ("page_size", "search_text", "filters")
FILTER_OPERATORS = frozenset({"eq", "contains", "gt", "lt", "gte", "lte", "in"})


def page_numbers(page: int, total_pages: int, max_visible: int = 5) -> list[int]:
    """Sliding window of page numbers centred on ``page``."""
    if total_pages <= 0:
        return []
    half = max_visible // 2
    start = max(1, page - half)
    end = min(total_pages, start + max_visible - 1)
    if end - start + 1 < max_visible:
        start = max(1, end - max_visible + 1)
    return list(range(start, end + 1))


def page_bounds(page: int, page_size: int, total: int) -> tuple[int, int]:
    """Zero-based (start, end) row indices of ``page``; end is inclusive."""
    start = (page - 1) * page_size
    return start, min(start + page_size - 1, total - 1)


class QueryState:
    """Owns the current query descriptor for one resource collection.

    All changes go through :meth:`apply`, which normalizes them and notifies
    subscribers only when the descriptor actually changes. Search input is
    debounced: :meth:`set_search` schedules a cancellable task and only the
    value that stays stable for the quiescence interval is applied.
    """

    def __init__(
        self,
        initial: QueryDescriptor | None = None,
        *,
        page_size_options: Iterable[int] = (10, 25, 50, 100),
        debounce: Duration = "300ms",
    ) -> None:
        self._page_size_options = tuple(page_size_options)
        self._debounce = to_seconds(debounce)
        self._descriptor = QueryDescriptor()
        self._total_pages: int | None = None
        self._pending_search: asyncio.Task[None] | None = None
        self._pending_text: str | None = None
        self._changed: Signal[QueryDescriptor] = Signal("query")
        if initial is not None:
            self._descriptor = self._normalize(initial, {})

    @property
    def descriptor(self) -> QueryDescriptor:
        return self._descriptor

    @property
    def total_pages(self) -> int | None:
        """Total page count reported by the last clamp, if known."""
        return self._total_pages

    @property
    def search_pending(self) -> bool:
        return self._pending_search is not None and not self._pending_search.done()

    def subscribe(
        self, listener: Callable[[QueryDescriptor], None]
    ) -> Callable[[], None]:
        return self._changed.subscribe(listener)

    def apply(self, **changes: Any) -> QueryDescriptor:
        """Merge ``changes`` into the current descriptor."""
        unknown = set(changes) - _FIELDS
        if unknown:
            raise InvalidArgument(f"Unknown query fields: {sorted(unknown)}")

        current = self._descriptor
        candidate = self._normalize(replace(current, **changes), changes)
        resets = any(
            getattr(candidate, name) != getattr(current, name)
            for name in _RESULT_SET_FIELDS
        )
        if resets:
            candidate = replace(candidate, page=1)
            self._total_pages = None

        return self._commit(candidate)

    def set_sort(self, field: str) -> QueryDescriptor:
        """Cycle ``field`` through none -> asc -> desc -> none."""
        current = self._descriptor
        if current.sort_field != field:
            return self.apply(sort_field=field, sort_direction=SortDirection.ASC)
        if current.sort_direction is SortDirection.ASC:
            return self.apply(sort_direction=SortDirection.DESC)
        return self.apply(sort_field=None, sort_direction=SortDirection.ASC)

    def set_search(self, text: str) -> None:
        """Debounce ``text``; only the last value within the interval is applied."""
        self.cancel()
        self._pending_text = text
        self._pending_search = asyncio.get_running_loop().create_task(
            self._apply_search_later(text)
        )

    async def flush(self) -> QueryDescriptor:
        """Apply any pending search immediately."""
        text = self._pending_text
        self.cancel()
        if text is not None:
            return self.apply(search_text=text)
        return self._descriptor

    def cancel(self) -> None:
        """Drop any pending search input."""
        if self._pending_search is not None and not self._pending_search.done():
            self._pending_search.cancel()
        self._pending_search = None
        self._pending_text = None

    def clamp(self, total_pages: int) -> QueryDescriptor:
        """Record the server's page count and pull ``page`` back into range."""
        if total_pages < 0:
            raise InvalidArgument(f"total_pages must not be negative: {total_pages}")
        self._total_pages = total_pages
        last = max(1, total_pages)
        if self._descriptor.page > last:
            logger.debug("clamping page %d to %d", self._descriptor.page, last)
            return self._commit(replace(self._descriptor, page=last))
        return self._descriptor

    def go_to_page(self, page: int) -> QueryDescriptor:
        return self.apply(page=max(1, page))

    def next_page(self) -> QueryDescriptor:
        if self._total_pages is not None and self._descriptor.page >= self._total_pages:
            return self._descriptor
        return self.apply(page=self._descriptor.page + 1)

    def previous_page(self) -> QueryDescriptor:
        if self._descriptor.page <= 1:
            return self._descriptor
        return self.apply(page=self._descriptor.page - 1)

    def set_page_size(self, page_size: int) -> QueryDescriptor:
        return self.apply(page_size=page_size)

    def add_filter(self, field: str, operator: str, value: Any) -> QueryDescriptor:
        """Add a filter, replacing any existing one on the same field and operator."""
        kept = tuple(
            f
            for f in self._descriptor.filters
            if (f.field, f.operator) != (field, operator)
        )
        return self.apply(filters=(*kept, Filter(field, operator, value)))

    def remove_filter(self, field: str) -> QueryDescriptor:
        kept = tuple(f for f in self._descriptor.filters if f.field != field)
        return self.apply(filters=kept)

    def clear_filters(self) -> QueryDescriptor:
        return self.apply(filters=())

    async def _apply_search_later(self, text: str) -> None:
        await asyncio.sleep(self._debounce)
        self._pending_search = None
        self._pending_text = None
        self.apply(search_text=text)

    def _normalize(
        self, descriptor: QueryDescriptor, changes: dict[str, Any]
    ) -> QueryDescriptor:
        page = descriptor.page
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise InvalidArgument(f"page must be an integer >= 1, got {page!r}")
        if descriptor.page_size not in self._page_size_options:
            raise InvalidArgument(
                f"page_size {descriptor.page_size!r} not in {self._page_size_options}"
            )
        try:
            direction = SortDirection(descriptor.sort_direction)
        except ValueError as e:
            raise InvalidArgument(
                f"Invalid sort direction: {descriptor.sort_direction!r}"
            ) from e

        if not isinstance(descriptor.search_text, str):
            raise InvalidArgument(
                f"search_text must be a string, got {descriptor.search_text!r}"
            )
        filters = tuple(_coerce_filter(f) for f in descriptor.filters)
        if self._total_pages is not None and "page" in changes:
            page = min(page, max(1, self._total_pages))

        return replace(
            descriptor,
            page=page,
            sort_direction=direction,
            sort_field=descriptor.sort_field or None,
            search_text=descriptor.search_text.strip(),
            filters=filters,
        )

    def _commit(self, descriptor: QueryDescriptor) -> QueryDescriptor:
        if descriptor != self._descriptor:
            self._descriptor = descriptor
            self._changed.emit(descriptor)
        return descriptor


def _coerce_filter(item: Filter | tuple[str, str, Any]) -> Filter:
    if not isinstance(item, Filter):
        try:
            item = Filter(*item)
        except TypeError as e:
            raise InvalidArgument(f"Invalid filter: {item!r}") from e
    if item.operator not in FILTER_OPERATORS:
        raise InvalidArgument(f"Unknown filter operator: {item.operator!r}")
    if isinstance(item.value, list):
        item = Filter(item.field, item.operator, tuple(item.value))
    return item


__all__ = ["FILTER_OPERATORS", "QueryState", "page_bounds", "page_numbers"]
