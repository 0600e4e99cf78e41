"""Credential store protocol and the in-memory implementation."""

import asyncio
from typing import Protocol, runtime_checkable

from rowdeck.types import Credentials


@runtime_checkable
class CredentialStore(Protocol):
    """Holds the current access/refresh token pair."""

    async def get(self) -> Credentials:
        """Return a copy of the current credentials."""
        ...

    async def set(self, credentials: Credentials) -> None:
        """Replace the stored credentials."""
        ...

    async def clear(self) -> None:
        """Forget both tokens."""
        ...


class MemoryCredentialStore:
    """Async in-memory credential store."""

    def __init__(
        self,
        access_token: str | None = None,
        refresh_token: str | None = None,
    ) -> None:
        self._credentials = Credentials(access_token, refresh_token)
        self._lock = asyncio.Lock()

    async def get(self) -> Credentials:
        async with self._lock:
            return Credentials(
                self._credentials.access_token, self._credentials.refresh_token
            )

    async def set(self, credentials: Credentials) -> None:
        async with self._lock:
            self._credentials = Credentials(
                credentials.access_token, credentials.refresh_token
            )

    async def clear(self) -> None:
        async with self._lock:
            self._credentials = Credentials()


__all__ = ["CredentialStore", "MemoryCredentialStore"]
