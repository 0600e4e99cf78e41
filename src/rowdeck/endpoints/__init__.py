"""Resource backends for collection caches."""

from rowdeck.endpoints.base import ResourceBackend
from rowdeck.endpoints.memory import MemoryBackend
from rowdeck.endpoints.rest import RestBackend, parse_page

__all__ = [
    "MemoryBackend",
    "ResourceBackend",
    "RestBackend",
    "parse_page",
]
