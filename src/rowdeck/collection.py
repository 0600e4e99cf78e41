"""Resource collection cache - paged reads with optimistic writes.

Provides:
- CollectionCache[E]: one instance per entity type
- fetch_page(): latest-descriptor-wins page loading with request coalescing
- create(), update(), delete(): optimistic mutations with atomic rollback
- subscribe(): immutable state snapshots for the UI layer
- create_collection(): wires a REST-backed cache for a known resource
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from rowdeck.config import ClientConfig
from rowdeck.endpoints.base import ResourceBackend
from rowdeck.endpoints.rest import RestBackend
from rowdeck.errors import InvalidArgument, NotFound, OperationInProgress, RowdeckError
from rowdeck.models import SCHEMAS, Entity, EntitySchema
from rowdeck.query import QueryState
from rowdeck.signals import Signal
from rowdeck.transport import AsyncTransport
from rowdeck.types import (
    CacheStatus,
    CollectionState,
    MutationKind,
    OpResult,
    Page,
    PendingOp,
    QueryDescriptor,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)
R = TypeVar("R")

Changes = dict[str, Any]


def _index_of(items: tuple[E, ...], id: str) -> int | None:
    for index, item in enumerate(items):
        if item.id == id:
            return index
    return None


def _swap(items: tuple[E, ...], id: str, entity: E) -> tuple[E, ...]:
    return tuple(entity if item.id == id else item for item in items)


def _without(items: tuple[E, ...], id: str) -> tuple[E, ...]:
    return tuple(item for item in items if item.id != id)


class CollectionCache(Generic[E]):
    """Cache of the current page of one resource collection.

    Only the response to the most recently issued ``fetch_page`` is applied;
    late responses for superseded descriptors are dropped. Mutations are
    applied locally first and rolled back in a single state transition if the
    server rejects them. At most one mutation per entity id is in flight.

    Backend failures (any :class:`RowdeckError`) never escape as exceptions:
    every operation returns an :class:`OpResult`, and fetch/mutation failures
    are also recorded in ``state.last_error``. Anything else is a bug and
    propagates after the cache has restored a consistent state.

    Usage:
        cache = CollectionCache(backend, USERS, query=QueryState())
        unsubscribe = cache.subscribe(render)
        await cache.fetch_page()
        result = await cache.update("user-1", {"is_active": False})
    """

    def __init__(
        self,
        backend: ResourceBackend[E],
        schema: EntitySchema[E],
        *,
        query: QueryState | None = None,
    ) -> None:
        self._backend = backend
        self._schema = schema
        self._query = query
        self._state: CollectionState[E] = CollectionState()
        self._changed: Signal[CollectionState[E]] = Signal(
            f"collection:{schema.resource}"
        )
        self._fetch_seq = 0
        self._loading = False
        # Bumped whenever a fetched page replaces the local one
        self._generation = 0
        self._in_flight: dict[QueryDescriptor, asyncio.Task[Page[E]]] = {}
        self._busy: set[str] = set()

    @property
    def state(self) -> CollectionState[E]:
        return self._state

    @property
    def schema(self) -> EntitySchema[E]:
        return self._schema

    @property
    def query(self) -> QueryState | None:
        return self._query

    def subscribe(
        self, listener: Callable[[CollectionState[E]], None]
    ) -> Callable[[], None]:
        """Call ``listener`` with every new state snapshot."""
        return self._changed.subscribe(listener)

    async def fetch_page(
        self, descriptor: QueryDescriptor | None = None
    ) -> OpResult[Page[E]]:
        """Load the page for ``descriptor`` (default: the bound query state).

        On failure the previous page stays available and the error is
        recorded. A response that arrives after a newer fetch was issued is
        returned to its caller but never applied to the cache.
        """
        if descriptor is None:
            descriptor = self._current_descriptor()
        self._fetch_seq += 1
        seq = self._fetch_seq
        self._loading = True
        self._update(descriptor=descriptor)

        try:
            page = await self._coalesced_list(descriptor)
        except RowdeckError as e:
            if seq != self._fetch_seq:
                logger.debug("ignoring failure of superseded fetch %s", descriptor)
                return OpResult(error=e)
            self._loading = False
            logger.warning("fetching %s failed: %s", self._schema.resource, e)
            self._update(failed=e)
            return OpResult(error=e)
        except BaseException:
            if seq == self._fetch_seq:
                self._loading = False
                self._update()
            raise

        if seq != self._fetch_seq:
            logger.debug("discarding superseded page for %s", descriptor)
            return OpResult(value=page)

        self._loading = False
        self._generation += 1
        self._update(last_page=page, last_error=None)
        # Only the query's own result set bounds its paging
        if self._query is not None and descriptor == self._query.descriptor:
            self._query.clamp(page.total_pages)
        return OpResult(value=page)

    async def refresh(self) -> OpResult[Page[E]]:
        """Refetch the most recently requested descriptor."""
        descriptor = self._state.descriptor or self._current_descriptor()
        return await self.fetch_page(descriptor)

    async def fetch_one(self, id: str) -> OpResult[E]:
        """Load a single entity and make it the selection."""
        try:
            entity = await self._backend.get(id)
        except RowdeckError as e:
            logger.warning("fetching %s/%s failed: %s", self._schema.resource, id, e)
            self._update(failed=e)
            return OpResult(error=e)
        self._update(selected=entity)
        return OpResult(value=entity)

    def select(self, entity: E | None) -> None:
        self._update(selected=entity)

    def clear_error(self) -> None:
        self._update(last_error=None)

    async def create(self, draft: Mapping[str, Any] | BaseModel) -> OpResult[E]:
        """Insert ``draft`` at the head of the page, then confirm with the server."""
        try:
            validated = self._schema.validate_draft(draft)
        except InvalidArgument as e:
            return self._reject(MutationKind.CREATE, "-", e)

        temp_id = f"optimistic-{uuid.uuid4().hex}"
        placeholder = self._schema.placeholder(validated, temp_id)
        generation = self._generation
        page = self._state.last_page
        changes: Changes = {}
        if page is not None:
            changes["last_page"] = replace(
                page, items=(placeholder, *page.items), total=page.total + 1
            )
        self._begin(MutationKind.CREATE, temp_id, **changes)

        def confirm(created: E) -> Changes:
            current = self._state.last_page
            if current is None or self._generation != generation:
                return {}
            items = _swap(current.items, temp_id, created)
            return {"last_page": replace(current, items=items)}

        def rollback() -> Changes:
            current = self._state.last_page
            if current is None or self._generation != generation:
                return {}
            if _index_of(current.items, temp_id) is None:
                return {}
            return {
                "last_page": replace(
                    current,
                    items=_without(current.items, temp_id),
                    total=current.total - 1,
                )
            }

        return await self._mutate(
            MutationKind.CREATE,
            temp_id,
            lambda: self._backend.create(validated),
            confirm,
            rollback,
        )

    async def update(
        self, id: str, patch: Mapping[str, Any] | BaseModel
    ) -> OpResult[E]:
        """Merge ``patch`` into the row and selection, then confirm."""
        try:
            validated = self._schema.validate_patch(patch)
        except InvalidArgument as e:
            return self._reject(MutationKind.UPDATE, id, e)
        if id in self._busy:
            return self._reject(MutationKind.UPDATE, id, self._in_progress(id))

        state = self._state
        index = _index_of(state.items, id)
        selected = state.selected if _is(state.selected, id) else None
        if index is None and selected is None:
            return self._reject(
                MutationKind.UPDATE, id, NotFound(f"{self._schema.resource}/{id}")
            )

        generation = self._generation
        changes: Changes = {}
        original = state.items[index] if index is not None else None
        if original is not None and state.last_page is not None:
            changes["last_page"] = replace(
                state.last_page,
                items=_swap(
                    state.items, id, self._schema.apply_patch(original, validated)
                ),
            )
        optimistic_selected = None
        if selected is not None:
            optimistic_selected = self._schema.apply_patch(selected, validated)
            changes["selected"] = optimistic_selected
        self._begin(MutationKind.UPDATE, id, **changes)

        def confirm(updated: E) -> Changes:
            out: Changes = {}
            current = self._state.last_page
            if current is not None and _index_of(current.items, id) is not None:
                items = _swap(current.items, id, updated)
                out["last_page"] = replace(current, items=items)
            if _is(self._state.selected, id):
                out["selected"] = updated
            return out

        def rollback() -> Changes:
            out: Changes = {}
            current = self._state.last_page
            if (
                original is not None
                and current is not None
                and self._generation == generation
            ):
                items = _swap(current.items, id, original)
                out["last_page"] = replace(current, items=items)
            if selected is not None and self._state.selected is optimistic_selected:
                out["selected"] = selected
            return out

        return await self._mutate(
            MutationKind.UPDATE,
            id,
            lambda: self._backend.update(id, validated),
            confirm,
            rollback,
        )

    async def delete(self, id: str) -> OpResult[str]:
        """Remove the row, then confirm; rollback restores its original position."""
        if id in self._busy:
            return self._reject(MutationKind.DELETE, id, self._in_progress(id))

        state = self._state
        index = _index_of(state.items, id)
        selected = state.selected if _is(state.selected, id) else None
        if index is None and selected is None:
            return self._reject(
                MutationKind.DELETE, id, NotFound(f"{self._schema.resource}/{id}")
            )

        generation = self._generation
        changes: Changes = {}
        removed = state.items[index] if index is not None else None
        if removed is not None and state.last_page is not None:
            changes["last_page"] = replace(
                state.last_page,
                items=_without(state.items, id),
                total=state.last_page.total - 1,
            )
        if selected is not None:
            changes["selected"] = None
        self._begin(MutationKind.DELETE, id, **changes)

        async def call() -> str:
            await self._backend.delete(id)
            return id

        def rollback() -> Changes:
            out: Changes = {}
            current = self._state.last_page
            if (
                removed is not None
                and index is not None
                and current is not None
                and self._generation == generation
                and _index_of(current.items, id) is None
            ):
                items = list(current.items)
                items.insert(min(index, len(items)), removed)
                out["last_page"] = replace(
                    current, items=tuple(items), total=current.total + 1
                )
            if selected is not None and self._state.selected is None:
                out["selected"] = selected
            return out

        return await self._mutate(
            MutationKind.DELETE, id, call, lambda _: {}, rollback
        )

    async def _mutate(
        self,
        kind: MutationKind,
        target: str,
        call: Callable[[], Awaitable[R]],
        confirm: Callable[[R], Changes],
        rollback: Callable[[], Changes],
    ) -> OpResult[R]:
        try:
            result = await call()
        except RowdeckError as e:
            logger.warning(
                "%s %s/%s failed, rolling back: %s",
                kind.value,
                self._schema.resource,
                target,
                e,
            )
            self._finish(target, failed=e, **rollback())
            return OpResult(error=e)
        except BaseException:
            self._finish(target, **rollback())
            raise
        self._finish(target, last_error=None, **confirm(result))
        return OpResult(value=result)

    async def _coalesced_list(self, descriptor: QueryDescriptor) -> Page[E]:
        """Share one backend call between identical in-flight fetches."""
        try:
            hash(descriptor)
        except TypeError:
            return await self._backend.list(descriptor)

        task = self._in_flight.get(descriptor)
        if task is None:
            task = asyncio.create_task(self._backend.list(descriptor))
            self._in_flight[descriptor] = task

            def forget(done: asyncio.Task[Page[E]]) -> None:
                if self._in_flight.get(descriptor) is done:
                    del self._in_flight[descriptor]

            task.add_done_callback(forget)
        return await asyncio.shield(task)

    def _current_descriptor(self) -> QueryDescriptor:
        if self._query is not None:
            return self._query.descriptor
        return self._state.descriptor or QueryDescriptor()

    def _begin(self, kind: MutationKind, target: str, **changes: Any) -> None:
        logger.debug("%s %s/%s (optimistic)", kind.value, self._schema.resource, target)
        self._busy.add(target)
        pending = (*self._state.pending_ops, PendingOp(kind, target))
        self._update(pending_ops=pending, **changes)

    def _finish(
        self, target: str, *, failed: RowdeckError | None = None, **changes: Any
    ) -> None:
        self._busy.discard(target)
        pending = tuple(op for op in self._state.pending_ops if op.target != target)
        self._update(failed=failed, pending_ops=pending, **changes)

    def _in_progress(self, id: str) -> OperationInProgress:
        return OperationInProgress(
            f"{self._schema.resource}/{id} has a pending mutation"
        )

    def _reject(
        self, kind: MutationKind, target: str, error: RowdeckError
    ) -> OpResult[Any]:
        logger.warning(
            "%s %s/%s rejected: %s", kind.value, self._schema.resource, target, error
        )
        return OpResult(error=error)

    def _update(self, *, failed: RowdeckError | None = None, **changes: Any) -> None:
        state = replace(self._state, **changes)
        if failed is not None:
            state = replace(state, status=CacheStatus.ERROR, last_error=failed)
        else:
            state = replace(state, status=self._status_for(state))
        self._state = state
        self._changed.emit(state)

    def _status_for(self, state: CollectionState[E]) -> CacheStatus:
        if state.pending_ops:
            return CacheStatus.MUTATING
        if self._loading:
            return CacheStatus.LOADING
        if state.last_error is not None:
            return CacheStatus.ERROR
        return CacheStatus.IDLE


def _is(entity: Entity | None, id: str) -> bool:
    return entity is not None and entity.id == id


def create_collection(
    transport: AsyncTransport,
    resource: str,
    *,
    config: ClientConfig | None = None,
    initial: QueryDescriptor | None = None,
) -> CollectionCache[Any]:
    """Build a REST-backed cache and query state for ``users`` or ``products``.

    Args:
        transport: Authenticated transport shared by all collections
        resource: Resource name registered in ``SCHEMAS``
        config: Page size options and search debounce (default: ClientConfig())
        initial: Starting descriptor (default: first page, default page size)

    Returns:
        CollectionCache bound to a fresh QueryState
    """
    try:
        schema = SCHEMAS[resource]
    except KeyError:
        raise InvalidArgument(f"Unknown resource: {resource!r}") from None

    config = config or ClientConfig()
    query = QueryState(
        initial or QueryDescriptor(page_size=config.default_page_size),
        page_size_options=config.page_size_options,
        debounce=config.search_debounce,
    )
    return CollectionCache(RestBackend(transport, schema), schema, query=query)


__all__ = ["CollectionCache", "create_collection"]
