"""Shared pytest fixtures."""

import pytest

from rowdeck import (
    PRODUCTS,
    USERS,
    MemoryBackend,
    MemoryCredentialStore,
    Product,
    User,
)


def make_users(count: int) -> list[User]:
    return [
        User(
            id=f"user-{i}",
            email=f"user{i}@enterprise.com",
            first_name="First",
            last_name=f"Last{i}",
            role="user" if i % 3 else "manager",
            department="Sales" if i % 2 else "Engineering",
            is_active=i % 10 != 0,
        )
        for i in range(1, count + 1)
    ]


def make_products(count: int) -> list[Product]:
    return [
        Product(
            id=f"prod-{i}",
            sku=f"SKU-{i:06d}",
            name=f"Widget {i}",
            category="Tools" if i % 2 else "Books",
            price=float(i),
            stock=i * 10,
            status="active",
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def credential_store() -> MemoryCredentialStore:
    """Create a logged-in credential store for each test."""
    return MemoryCredentialStore(access_token="old-access", refresh_token="refresh-1")


@pytest.fixture
def users() -> list[User]:
    return make_users(137)


@pytest.fixture
def user_backend(users: list[User]) -> MemoryBackend[User]:
    """Create a fresh in-memory users backend for each test."""
    return MemoryBackend(USERS, users)


@pytest.fixture
def product_backend() -> MemoryBackend[Product]:
    """Create a fresh in-memory products backend for each test."""
    return MemoryBackend(PRODUCTS, make_products(40))
