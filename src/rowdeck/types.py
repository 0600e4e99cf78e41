"""Core types for the rowdeck tabular data engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from rowdeck.errors import RowdeckError

T = TypeVar("T")


class SortDirection(str, Enum):
    """Sort order of a column."""

    ASC = "asc"
    DESC = "desc"


class CacheStatus(str, Enum):
    """Lifecycle status of a collection cache."""

    IDLE = "idle"
    LOADING = "loading"
    MUTATING = "mutating"
    ERROR = "error"


class MutationKind(str, Enum):
    """Kind of optimistic mutation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class Filter:
    """A single column filter."""

    field: str
    operator: str  # eq, contains, gt, lt, gte, lte, in
    value: Any


@dataclass(frozen=True, slots=True)
class QueryDescriptor:
    """Canonical parameter set identifying one query against a collection."""

    page: int = 1
    page_size: int = 25
    sort_field: str | None = None
    sort_direction: SortDirection = SortDirection.ASC
    search_text: str = ""
    filters: tuple[Filter, ...] = ()

    def to_params(self) -> dict[str, str | int]:
        """Render as list-endpoint query parameters."""
        params: dict[str, str | int] = {
            "page": self.page,
            "pageSize": self.page_size,
        }
        if self.search_text:
            params["search"] = self.search_text
        if self.sort_field:
            params["sort"] = self.sort_field
            params["order"] = self.sort_direction.value
        for f in self.filters:
            value = f.value
            if isinstance(value, (list, tuple)):
                value = ",".join(str(v) for v in value)
            params[f"filter[{f.field}][{f.operator}]"] = str(value)
        return params


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    """One page of a server-side collection."""

    items: tuple[T, ...]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


@dataclass(frozen=True, slots=True)
class PendingOp:
    """A mutation awaiting server confirmation."""

    kind: MutationKind
    target: str  # entity id (placeholder id for creates)


@dataclass(frozen=True, slots=True)
class CollectionState(Generic[T]):
    """Immutable snapshot of a collection cache."""

    last_page: Page[T] | None = None
    selected: T | None = None
    pending_ops: tuple[PendingOp, ...] = ()
    status: CacheStatus = CacheStatus.IDLE
    last_error: RowdeckError | None = None
    descriptor: QueryDescriptor | None = None

    @property
    def pending_op(self) -> PendingOp | None:
        """Most recently started pending mutation, if any."""
        return self.pending_ops[-1] if self.pending_ops else None

    @property
    def items(self) -> tuple[T, ...]:
        return self.last_page.items if self.last_page is not None else ()

    @property
    def total(self) -> int:
        return self.last_page.total if self.last_page is not None else 0


@dataclass(frozen=True, slots=True)
class VisibleWindow:
    """Slice of rows that must be materialized for the current viewport."""

    start_index: int
    end_index: int  # inclusive; -1 for an empty window
    offset_top_px: float
    total_height_px: float

    @property
    def is_empty(self) -> bool:
        return self.end_index < self.start_index

    @property
    def count(self) -> int:
        return 0 if self.is_empty else self.end_index - self.start_index + 1

    def indices(self) -> range:
        """Row indices covered by the window."""
        return range(self.start_index, self.end_index + 1)


@dataclass(slots=True)
class Credentials:
    """Access/refresh token pair."""

    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.access_token is None and self.refresh_token is None


@dataclass(frozen=True, slots=True)
class OpResult(Generic[T]):
    """Typed outcome of a collection operation."""

    value: T | None = None
    error: RowdeckError | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


# Duration type alias
Duration = str | int  # "300ms", "30s", "5m" or milliseconds
