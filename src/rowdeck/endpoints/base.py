"""Backend protocol consumed by collection caches."""

from typing import Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel

from rowdeck.types import Page, QueryDescriptor

E = TypeVar("E")


@runtime_checkable
class ResourceBackend(Protocol[E]):
    """List/get/create/update/delete over one resource collection."""

    async def list(self, descriptor: QueryDescriptor) -> Page[E]:
        """Fetch the page matching ``descriptor``."""
        ...

    async def get(self, id: str) -> E:
        """Fetch a single entity."""
        ...

    async def create(self, draft: BaseModel) -> E:
        """Create an entity; returns the server's canonical copy."""
        ...

    async def update(self, id: str, patch: BaseModel) -> E:
        """Apply a partial update; returns the updated entity."""
        ...

    async def delete(self, id: str) -> None:
        """Remove an entity."""
        ...
