"""Authenticated HTTP transport with single-flight credential refresh."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import httpx

from rowdeck.config import ClientConfig
from rowdeck.credentials import CredentialStore
from rowdeck.duration import to_seconds
from rowdeck.errors import AuthExpired, NetworkError, NotFound, ServerRejected
from rowdeck.signals import Signal
from rowdeck.types import Credentials, Duration

logger = logging.getLogger(__name__)


class AsyncTransport:
    """Async HTTP transport that attaches, refreshes and clears credentials.

    Every call reads the access token from the credential store. A 401
    response triggers one refresh using the refresh token, after which the
    original call is replayed exactly once. Concurrent 401s share a single
    refresh. When the session cannot be recovered, the credential store is
    cleared, logout listeners are notified and :class:`AuthExpired` is raised.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        *,
        config: ClientConfig | None = None,
        base_url: str | None = None,
        timeout: Duration | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._credentials = credentials
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or self._config.api_base_url,
            headers={"Content-Type": "application/json"},
            timeout=to_seconds(self._config.timeout if timeout is None else timeout),
        )
        self._refresh_task: asyncio.Task[str] | None = None
        self._refresh_source: str | None = None
        self._logout: Signal[str] = Signal("logout")

    async def __aenter__(self) -> AsyncTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    def on_logout(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """Subscribe to forced and explicit logouts; listener gets the reason."""
        return self._logout.subscribe(listener)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send an authenticated request and return the decoded JSON body."""
        credentials = await self._credentials.get()
        token = credentials.access_token
        response = await self._send(method, path, token, params=params, json=json)
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return self._decode(method, path, response)

        logger.debug("%s %s rejected with 401", method, path)
        token = await self._recovered_token(token)
        response = await self._send(method, path, token, params=params, json=json)
        if response.status_code == httpx.codes.UNAUTHORIZED:
            # The replay is final; a second refresh here could loop forever
            await self._force_logout("credential rejected after refresh")
            raise AuthExpired(f"{method} {path} rejected after credential refresh")
        return self._decode(method, path, response)

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Exchange user credentials for a token pair; returns the response body."""
        try:
            response = await self._client.post(
                self._config.login_path, json={"email": email, "password": password}
            )
        except httpx.TimeoutException as e:
            raise NetworkError("login timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"login failed: {e}") from e

        body = self._decode("POST", self._config.login_path, response)
        credentials = _credentials_from(body)
        if credentials is None:
            raise ServerRejected("Login response carried no token", status=200)
        await self._credentials.set(credentials)
        logger.info("logged in as %s", email)
        return body

    async def logout(self) -> None:
        """Notify the server (best effort), then clear local credentials."""
        credentials = await self._credentials.get()
        if credentials.access_token is not None:
            try:
                await self._send(
                    "POST", self._config.logout_path, credentials.access_token
                )
            except NetworkError as e:
                logger.warning("server logout failed: %s", e)
        await self._force_logout("user logout")

    async def _send(
        self,
        method: str,
        path: str,
        token: str | None,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            return await self._client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

    def _decode(self, method: str, path: str, response: httpx.Response) -> Any:
        if response.is_success:
            if response.status_code == httpx.codes.NO_CONTENT or not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise ServerRejected(
                    f"{method} {path} returned invalid JSON",
                    status=response.status_code,
                ) from e

        try:
            body = response.json()
            error = body.get("message") or body.get("error") or "Request failed"
        except Exception:
            error = f"HTTP {response.status_code}"
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFound(f"{method} {path}: {error}")
        raise ServerRejected(f"{method} {path}: {error}", status=response.status_code)

    async def _recovered_token(self, used_token: str | None) -> str:
        """Return a fresh access token, refreshing at most once per expired token."""
        task = self._refresh_task
        if task is None or self._refresh_source != used_token:
            credentials = await self._credentials.get()
            if (
                credentials.access_token is not None
                and credentials.access_token != used_token
            ):
                return credentials.access_token
            if credentials.refresh_token is None:
                await self._force_logout("no refresh token")
                raise AuthExpired("Session expired")
            # Re-check: another request may have started the refresh meanwhile
            if self._refresh_task is None or self._refresh_source != used_token:
                self._refresh_source = used_token
                self._refresh_task = asyncio.create_task(
                    self._refresh(credentials.refresh_token)
                )
            task = self._refresh_task
        return await asyncio.shield(task)

    async def _refresh(self, refresh_token: str) -> str:
        logger.info("access token expired; refreshing")
        path = self._config.refresh_path
        try:
            response = await self._client.post(
                path, json={"refreshToken": refresh_token}
            )
        except httpx.HTTPError as e:
            await self._force_logout("refresh failed")
            raise AuthExpired(f"Credential refresh failed: {e}") from e

        credentials = None
        if response.is_success:
            try:
                credentials = _credentials_from(response.json(), refresh_token)
            except ValueError:
                credentials = None
        if credentials is None:
            await self._force_logout("refresh rejected")
            raise AuthExpired(f"Credential refresh rejected ({response.status_code})")

        await self._credentials.set(credentials)
        logger.info("access token refreshed")
        return credentials.access_token  # type: ignore[return-value]

    async def _force_logout(self, reason: str) -> None:
        credentials = await self._credentials.get()
        await self._credentials.clear()
        # Only the transition out of a session is signalled
        if not credentials.is_empty:
            logger.info("logging out: %s", reason)
            self._logout.emit(reason)


def _credentials_from(
    body: Any, fallback_refresh: str | None = None
) -> Credentials | None:
    if not isinstance(body, dict):
        return None
    access = body.get("token") or body.get("accessToken")
    if not access:
        return None
    return Credentials(
        access_token=access,
        refresh_token=body.get("refreshToken") or fallback_refresh,
    )


__all__ = ["AsyncTransport"]
