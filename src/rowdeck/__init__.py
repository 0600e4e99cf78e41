"""rowdeck - client-side tabular data engine for paged, authenticated APIs."""

# Collection cache
from rowdeck.collection import CollectionCache, create_collection

# Configuration
from rowdeck.config import ClientConfig

# Credentials
from rowdeck.credentials import CredentialStore, MemoryCredentialStore

# Duration parsing
from rowdeck.duration import parse_duration, to_seconds

# Backends
from rowdeck.endpoints import MemoryBackend, ResourceBackend, RestBackend

# Errors
from rowdeck.errors import (
    AuthExpired,
    ErrorKind,
    InvalidArgument,
    NetworkError,
    NotFound,
    OperationInProgress,
    RowdeckError,
    ServerRejected,
)

# Entities
from rowdeck.models import (
    PRODUCTS,
    USERS,
    Entity,
    EntitySchema,
    Product,
    ProductPatch,
    User,
    UserPatch,
)

# Query state
from rowdeck.query import QueryState, page_bounds, page_numbers

# Transport
from rowdeck.transport import AsyncTransport

# Core types
from rowdeck.types import (
    CacheStatus,
    CollectionState,
    Credentials,
    Filter,
    MutationKind,
    OpResult,
    Page,
    PendingOp,
    QueryDescriptor,
    SortDirection,
    VisibleWindow,
)

# Windowing
from rowdeck.window import compute_window

__version__ = "0.1.0"

__all__ = [
    "PRODUCTS",
    "USERS",
    "AsyncTransport",
    "AuthExpired",
    "CacheStatus",
    "ClientConfig",
    "CollectionCache",
    "CollectionState",
    "CredentialStore",
    "Credentials",
    "Entity",
    "EntitySchema",
    "ErrorKind",
    "Filter",
    "InvalidArgument",
    "MemoryBackend",
    "MemoryCredentialStore",
    "MutationKind",
    "NetworkError",
    "NotFound",
    "OpResult",
    "OperationInProgress",
    "Page",
    "PendingOp",
    "Product",
    "ProductPatch",
    "QueryDescriptor",
    "QueryState",
    "ResourceBackend",
    "RestBackend",
    "RowdeckError",
    "ServerRejected",
    "SortDirection",
    "User",
    "UserPatch",
    "VisibleWindow",
    "compute_window",
    "create_collection",
    "page_bounds",
    "page_numbers",
    "parse_duration",
    "to_seconds",
]
