"""REST backend that talks to the resource API through the transport."""

from __future__ import annotations

from typing import Any, Generic, TypeVar
from urllib.parse import quote

from pydantic import BaseModel

from rowdeck.errors import InvalidArgument, ServerRejected
from rowdeck.models import Entity, EntitySchema, wire
from rowdeck.transport import AsyncTransport
from rowdeck.types import Page, QueryDescriptor

E = TypeVar("E", bound=Entity)


class RestBackend(Generic[E]):
    """Resource backend for ``/{resource}`` and ``/{resource}/{id}`` routes."""

    def __init__(
        self,
        transport: AsyncTransport,
        schema: EntitySchema[E],
        *,
        path: str | None = None,
    ) -> None:
        self._transport = transport
        self._schema = schema
        self._path = path or f"/{schema.resource}"

    def _item_path(self, id: str) -> str:
        return f"{self._path}/{quote(id, safe='')}"

    async def list(self, descriptor: QueryDescriptor) -> Page[E]:
        body = await self._transport.request(
            "GET", self._path, params=descriptor.to_params()
        )
        return parse_page(body, self._schema, descriptor)

    async def get(self, id: str) -> E:
        body = await self._transport.request("GET", self._item_path(id))
        return self._entity(body)

    async def create(self, draft: BaseModel) -> E:
        body = await self._transport.request("POST", self._path, json=wire(draft))
        return self._entity(body)

    async def update(self, id: str, patch: BaseModel) -> E:
        body = await self._transport.request(
            "PUT", self._item_path(id), json=wire(patch, partial=True)
        )
        return self._entity(body)

    async def delete(self, id: str) -> None:
        await self._transport.request("DELETE", self._item_path(id))

    def _entity(self, body: Any) -> E:
        # Some endpoints wrap single entities as {"data": {...}}
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        try:
            return self._schema.parse(body)
        except InvalidArgument as e:
            raise ServerRejected(str(e), status=200) from e


def parse_page(
    body: Any, schema: EntitySchema[E], descriptor: QueryDescriptor
) -> Page[E]:
    """Decode ``{"data": [...], "pagination": {...}}`` into a :class:`Page`."""
    if not isinstance(body, dict) or not isinstance(body.get("data"), list):
        raise ServerRejected("Malformed page response", status=200)
    pagination = body.get("pagination") or {}
    try:
        items = tuple(schema.parse(item) for item in body["data"])
        total = int(pagination.get("total", len(items)))
        page = int(pagination.get("page", descriptor.page))
        page_size = int(pagination.get("pageSize", descriptor.page_size))
    except (InvalidArgument, TypeError, ValueError) as e:
        raise ServerRejected(f"Malformed page response: {e}", status=200) from e
    if total < 0 or page < 1 or page_size < 1:
        raise ServerRejected("Malformed page response: bad pagination", status=200)
    return Page(items=items, page=page, page_size=page_size, total=total)


__all__ = ["RestBackend", "parse_page"]
