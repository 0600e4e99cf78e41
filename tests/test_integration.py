"""Integration tests: collection cache over the REST backend and transport."""

from typing import Any

import httpx
import pytest
import respx

from rowdeck import (
    AsyncTransport,
    AuthExpired,
    CacheStatus,
    ClientConfig,
    CollectionCache,
    MemoryCredentialStore,
    ServerRejected,
    compute_window,
    create_collection,
    page_numbers,
)

BASE = "https://api.test.dev/api"
USERS_URL = f"{BASE}/users"


def user_json(i: int) -> dict[str, Any]:
    return {
        "id": f"user-{i}",
        "email": f"user{i}@enterprise.com",
        "firstName": "First",
        "lastName": f"Last{i}",
        "role": "user",
        "isActive": True,
    }


def users_page(request: httpx.Request, total: int = 137) -> httpx.Response:
    page = int(request.url.params.get("page", "1"))
    size = int(request.url.params.get("pageSize", "25"))
    start = (page - 1) * size
    ids = range(start + 1, min(start + size, total) + 1)
    return httpx.Response(
        200,
        json={
            "data": [user_json(i) for i in ids],
            "pagination": {"page": page, "pageSize": size, "total": total},
        },
    )


def bearer(request: httpx.Request) -> str:
    return request.headers.get("Authorization", "")


@pytest.fixture
async def transport(credential_store: MemoryCredentialStore) -> AsyncTransport:
    async with AsyncTransport(credential_store, base_url=BASE) as t:
        yield t


@pytest.fixture
def cache(transport: AsyncTransport) -> CollectionCache[Any]:
    return create_collection(
        transport, "users", config=ClientConfig(search_debounce="10ms")
    )


class TestUsersTable:
    """End-to-end flows for a users table."""

    @respx.mock
    async def test_fetch_refreshes_expired_token(
        self,
        cache: CollectionCache[Any],
        credential_store: MemoryCredentialStore,
    ) -> None:
        """Test that a 401 mid-session is recovered transparently."""

        def users(request: httpx.Request) -> httpx.Response:
            if bearer(request) != "Bearer new-access":
                return httpx.Response(401)
            return users_page(request)

        respx.get(host="api.test.dev", path="/api/users").mock(side_effect=users)
        refresh = respx.post(f"{BASE}/auth/refresh").mock(
            return_value=httpx.Response(
                200, json={"token": "new-access", "refreshToken": "refresh-2"}
            )
        )

        result = await cache.fetch_page()

        assert result.ok
        assert refresh.call_count == 1
        assert cache.state.status is CacheStatus.IDLE
        assert cache.state.total == 137
        assert len(cache.state.items) == 25
        credentials = await credential_store.get()
        assert credentials.access_token == "new-access"
        assert credentials.refresh_token == "refresh-2"
        assert page_numbers(1, cache.query.total_pages) == [1, 2, 3, 4, 5]

    @respx.mock
    async def test_search_then_page_through(
        self, cache: CollectionCache[Any]
    ) -> None:
        route = respx.get(host="api.test.dev", path="/api/users").mock(
            side_effect=lambda request: users_page(request, total=30)
        )

        cache.query.go_to_page(3)
        cache.query.set_search("  last1 ")
        descriptor = await cache.query.flush()
        await cache.fetch_page()
        cache.query.next_page()
        await cache.fetch_page()
        cache.query.next_page()

        params = [call.request.url.params for call in route.calls]
        assert descriptor.page == 1
        assert params[0]["search"] == "last1"
        assert params[0]["page"] == "1"
        assert params[1]["page"] == "2"
        assert cache.query.descriptor.page == 2
        assert [u.id for u in cache.state.items][:2] == ["user-26", "user-27"]

    @respx.mock
    async def test_rejected_update_rolls_back(
        self, cache: CollectionCache[Any]
    ) -> None:
        respx.get(host="api.test.dev", path="/api/users").mock(side_effect=users_page)
        respx.put(f"{USERS_URL}/user-2").mock(
            return_value=httpx.Response(500, json={"message": "database locked"})
        )
        await cache.fetch_page()
        before = cache.state.items

        result = await cache.update("user-2", {"isActive": False})

        assert isinstance(result.error, ServerRejected)
        assert result.error.status == 500
        assert "database locked" in result.error.message
        assert cache.state.items == before
        assert cache.state.status is CacheStatus.ERROR
        assert cache.state.last_error == result.error
        assert cache.state.pending_ops == ()

    @respx.mock
    async def test_confirmed_delete(self, cache: CollectionCache[Any]) -> None:
        respx.get(host="api.test.dev", path="/api/users").mock(side_effect=users_page)
        route = respx.delete(f"{USERS_URL}/user-1").mock(
            return_value=httpx.Response(204)
        )
        await cache.fetch_page()

        result = await cache.delete("user-1")

        assert result.value == "user-1"
        assert route.called
        assert cache.state.total == 136
        assert cache.state.items[0].id == "user-2"

    @respx.mock
    async def test_expired_session_is_recorded_and_logged_out(
        self,
        cache: CollectionCache[Any],
        transport: AsyncTransport,
        credential_store: MemoryCredentialStore,
    ) -> None:
        respx.get(host="api.test.dev", path="/api/users").mock(
            return_value=httpx.Response(401)
        )
        respx.post(f"{BASE}/auth/refresh").mock(return_value=httpx.Response(401))
        reasons: list[str] = []
        transport.on_logout(reasons.append)

        result = await cache.fetch_page()

        assert isinstance(result.error, AuthExpired)
        assert cache.state.last_error == result.error
        assert cache.state.status is CacheStatus.ERROR
        assert len(reasons) == 1
        assert (await credential_store.get()).is_empty


async def test_window_over_fetched_rows(cache: CollectionCache[Any]) -> None:
    config = ClientConfig()
    with respx.mock:
        respx.get(host="api.test.dev", path="/api/users").mock(side_effect=users_page)
        cache.query.set_page_size(100)
        await cache.fetch_page()

    rows = len(cache.state.items)
    assert config.should_virtualize(rows)
    window = compute_window(
        rows,
        config.row_height,
        scroll_top=520,
        viewport_height=600,
        overscan=config.overscan,
    )
    assert window.start_index == 0
    assert window.end_index == 31
    assert window.total_height_px == 100 * 52
