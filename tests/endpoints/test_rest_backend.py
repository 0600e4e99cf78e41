"""Tests for the REST backend using mocked HTTP responses."""

import json

import httpx
import pytest
import respx

from rowdeck import (
    PRODUCTS,
    USERS,
    AsyncTransport,
    Filter,
    MemoryCredentialStore,
    NotFound,
    QueryDescriptor,
    RestBackend,
    ServerRejected,
    SortDirection,
)
from rowdeck.models import ProductPatch, UserDraft

BASE = "https://api.test.dev/api"

USER_JSON = {
    "id": "user-1",
    "email": "user1@enterprise.com",
    "firstName": "John",
    "lastName": "Smith",
    "role": "admin",
    "department": "IT",
    "createdAt": "2024-01-01T00:00:00Z",
    "updatedAt": "2024-01-02T00:00:00Z",
    "isActive": True,
}

PRODUCT_JSON = {
    "id": "prod-1",
    "sku": "SKU-000001",
    "name": "Premium Widget 1",
    "description": "",
    "category": "Tools",
    "price": 19.99,
    "stock": 5,
    "status": "active",
}


@pytest.fixture
async def transport() -> AsyncTransport:
    store = MemoryCredentialStore(access_token="a", refresh_token="r")
    async with AsyncTransport(store, base_url=BASE) as t:
        yield t


@pytest.fixture
def users_backend(transport: AsyncTransport) -> RestBackend:
    return RestBackend(transport, USERS)


@pytest.fixture
def products_backend(transport: AsyncTransport) -> RestBackend:
    return RestBackend(transport, PRODUCTS)


class TestList:
    """Tests for list requests."""

    @respx.mock
    async def test_list_sends_params_and_parses_page(
        self, users_backend: RestBackend
    ) -> None:
        """Test that the descriptor is sent as query params."""
        route = respx.get(host="api.test.dev", path="/api/users").mock(
            return_value=httpx.Response(
                200,
                json={
                    "data": [USER_JSON],
                    "pagination": {
                        "page": 2,
                        "pageSize": 25,
                        "total": 137,
                        "totalPages": 6,
                    },
                },
            )
        )
        descriptor = QueryDescriptor(
            page=2,
            sort_field="email",
            sort_direction=SortDirection.DESC,
            search_text="smith",
            filters=(Filter("role", "in", ("admin", "manager")),),
        )

        page = await users_backend.list(descriptor)

        params = route.calls[0].request.url.params
        assert params["page"] == "2"
        assert params["pageSize"] == "25"
        assert params["search"] == "smith"
        assert params["sort"] == "email"
        assert params["order"] == "desc"
        assert params["filter[role][in]"] == "admin,manager"
        assert page.total == 137
        assert page.total_pages == 6
        assert page.items[0].first_name == "John"
        assert page.items[0].is_active is True

    @respx.mock
    async def test_default_descriptor_omits_optional_params(
        self, users_backend: RestBackend
    ) -> None:
        route = respx.get(host="api.test.dev", path="/api/users").mock(
            return_value=httpx.Response(
                200, json={"data": [], "pagination": {"total": 0}}
            )
        )

        page = await users_backend.list(QueryDescriptor())

        assert set(route.calls[0].request.url.params.keys()) == {"page", "pageSize"}
        assert page.items == ()
        assert page.total_pages == 0

    @respx.mock
    async def test_malformed_page(self, users_backend: RestBackend) -> None:
        respx.get(host="api.test.dev", path="/api/users").mock(
            return_value=httpx.Response(200, json={"items": []})
        )
        with pytest.raises(ServerRejected, match="Malformed"):
            await users_backend.list(QueryDescriptor())

    @respx.mock
    async def test_invalid_row(self, users_backend: RestBackend) -> None:
        respx.get(host="api.test.dev", path="/api/users").mock(
            return_value=httpx.Response(200, json={"data": [{"id": "x"}]})
        )
        with pytest.raises(ServerRejected, match="Malformed"):
            await users_backend.list(QueryDescriptor())


class TestSingleEntity:
    """Tests for get/create/update/delete."""

    @respx.mock
    async def test_get(self, users_backend: RestBackend) -> None:
        respx.get(f"{BASE}/users/user-1").mock(
            return_value=httpx.Response(200, json=USER_JSON)
        )
        user = await users_backend.get("user-1")
        assert user.id == "user-1"
        assert user.full_name == "John Smith"

    @respx.mock
    async def test_get_missing(self, users_backend: RestBackend) -> None:
        respx.get(f"{BASE}/users/ghost").mock(return_value=httpx.Response(404))
        with pytest.raises(NotFound):
            await users_backend.get("ghost")

    @respx.mock
    async def test_create_posts_camel_case(self, users_backend: RestBackend) -> None:
        """Test that drafts go over the wire with camelCase keys."""
        route = respx.post(f"{BASE}/users").mock(
            return_value=httpx.Response(201, json={"data": USER_JSON})
        )
        draft = UserDraft(
            email="user1@enterprise.com",
            first_name="John",
            last_name="Smith",
            role="admin",
        )

        user = await users_backend.create(draft)

        body = json.loads(route.calls[0].request.content)
        assert body["firstName"] == "John"
        assert body["isActive"] is True
        assert user.id == "user-1"

    @respx.mock
    async def test_update_sends_only_patched_fields(
        self, products_backend: RestBackend
    ) -> None:
        route = respx.put(f"{BASE}/products/prod-1").mock(
            return_value=httpx.Response(
                200, json={**PRODUCT_JSON, "status": "inactive"}
            )
        )

        product = await products_backend.update(
            "prod-1", ProductPatch(status="inactive")
        )

        assert json.loads(route.calls[0].request.content) == {"status": "inactive"}
        assert product.status.value == "inactive"

    @respx.mock
    async def test_delete(self, products_backend: RestBackend) -> None:
        route = respx.delete(f"{BASE}/products/prod-1").mock(
            return_value=httpx.Response(204)
        )
        await products_backend.delete("prod-1")
        assert route.called
