"""Entity models and the per-entity schema used by collection caches."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Generic, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from rowdeck.errors import InvalidArgument


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Entity(_WireModel):
    """A row of a resource collection, identified by a stable ``id``."""

    model_config = ConfigDict(frozen=True)

    id: str


class _Partial(_WireModel):
    model_config = ConfigDict(extra="forbid")

    # Fields that may be explicitly cleared with null
    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null(self) -> Self:
        cleared = sorted(
            name
            for name in self.model_fields_set
            if getattr(self, name) is None and name not in self.nullable_fields
        )
        if cleared:
            raise ValueError(f"fields cannot be null: {', '.join(cleared)}")
        return self


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class User(Entity):
    email: str
    first_name: str
    last_name: str
    role: UserRole = UserRole.USER
    avatar: str | None = None
    department: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class UserDraft(_Partial):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"avatar", "department"})

    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+$")
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    role: UserRole = UserRole.USER
    avatar: str | None = None
    department: str | None = None
    is_active: bool = True


class UserPatch(_Partial):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"avatar", "department"})

    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$")
    first_name: str | None = Field(default=None, min_length=1)
    last_name: str | None = Field(default=None, min_length=1)
    role: UserRole | None = None
    avatar: str | None = None
    department: str | None = None
    is_active: bool | None = None


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCONTINUED = "discontinued"


class Product(Entity):
    sku: str
    name: str
    description: str = ""
    category: str
    price: float = Field(ge=0)
    stock: int = Field(ge=0)
    status: ProductStatus = ProductStatus.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProductDraft(_Partial):
    sku: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    category: str
    price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    status: ProductStatus = ProductStatus.ACTIVE


class ProductPatch(_Partial):
    sku: str | None = Field(default=None, min_length=1)
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    category: str | None = None
    price: float | None = Field(default=None, ge=0)
    stock: int | None = Field(default=None, ge=0)
    status: ProductStatus | None = None


E = TypeVar("E", bound=Entity)


@dataclass(frozen=True, slots=True)
class EntitySchema(Generic[E]):
    """Binds an entity model to its draft and patch models."""

    resource: str
    model: type[E]
    draft: type[BaseModel]
    patch: type[BaseModel]

    def parse(self, data: Any) -> E:
        try:
            return self.model.model_validate(data)
        except ValidationError as e:
            raise InvalidArgument(f"Invalid {self.resource} payload: {e}") from e

    def validate_draft(self, data: Mapping[str, Any] | BaseModel) -> BaseModel:
        return self._validate(self.draft, data, "draft")

    def validate_patch(self, data: Mapping[str, Any] | BaseModel) -> BaseModel:
        patch = self._validate(self.patch, data, "patch")
        if not patch.model_fields_set:
            raise InvalidArgument(f"Empty {self.resource} patch")
        return patch

    def placeholder(self, draft: BaseModel, temp_id: str) -> E:
        """Local stand-in for an entity the server has not confirmed yet."""
        return self.model.model_construct(id=temp_id, **dict(draft))

    def apply_patch(self, entity: E, patch: BaseModel) -> E:
        return entity.model_copy(update=patch.model_dump(exclude_unset=True))

    def _validate(
        self, model: type[BaseModel], data: Mapping[str, Any] | BaseModel, what: str
    ) -> BaseModel:
        if isinstance(data, model):
            return data
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise InvalidArgument(f"Invalid {self.resource} {what}: {e}") from e


USERS: EntitySchema[User] = EntitySchema("users", User, UserDraft, UserPatch)
PRODUCTS: EntitySchema[Product] = EntitySchema(
    "products", Product, ProductDraft, ProductPatch
)

SCHEMAS: dict[str, EntitySchema[Any]] = {
    USERS.resource: USERS,
    PRODUCTS.resource: PRODUCTS,
}


def wire(model: BaseModel, *, partial: bool = False) -> dict[str, Any]:
    """Serialize a model for the REST API."""
    return model.model_dump(by_alias=True, mode="json", exclude_unset=partial)


__all__ = [
    "PRODUCTS",
    "SCHEMAS",
    "USERS",
    "Entity",
    "EntitySchema",
    "Product",
    "ProductDraft",
    "ProductPatch",
    "ProductStatus",
    "User",
    "UserDraft",
    "UserPatch",
    "UserRole",
    "wire",
]
