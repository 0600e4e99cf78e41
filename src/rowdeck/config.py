"""Client configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

from rowdeck.duration import parse_duration
from rowdeck.types import Duration

_ENV_PREFIX = "ROWDECK_"


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Settings shared by the transport, query state and collection caches."""

    api_base_url: str = "/api"
    timeout: Duration = "30s"
    login_path: str = "/auth/login"
    logout_path: str = "/auth/logout"
    refresh_path: str = "/auth/refresh"
    default_page_size: int = 25
    page_size_options: tuple[int, ...] = (10, 25, 50, 100)
    search_debounce: Duration = "300ms"
    row_height: int = 52
    overscan: int = 10
    virtualization_threshold: int = 100

    def __post_init__(self) -> None:
        parse_duration(self.timeout)
        parse_duration(self.search_debounce)
        if self.default_page_size not in self.page_size_options:
            raise ValueError(
                f"default_page_size {self.default_page_size} not in "
                f"page_size_options {self.page_size_options}"
            )
        if self.row_height <= 0:
            raise ValueError("row_height must be positive")
        if self.overscan < 0:
            raise ValueError("overscan must not be negative")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientConfig:
        """Build a config, overriding defaults from ``ROWDECK_*`` variables."""
        env = os.environ if environ is None else environ
        config = cls()
        overrides: dict[str, object] = {}
        if base_url := env.get(f"{_ENV_PREFIX}API_BASE_URL"):
            overrides["api_base_url"] = base_url
        if timeout := env.get(f"{_ENV_PREFIX}API_TIMEOUT"):
            overrides["timeout"] = int(timeout) if timeout.isdigit() else timeout
        if page_size := env.get(f"{_ENV_PREFIX}PAGE_SIZE"):
            overrides["default_page_size"] = int(page_size)
        if debounce := env.get(f"{_ENV_PREFIX}SEARCH_DEBOUNCE"):
            overrides["search_debounce"] = (
                int(debounce) if debounce.isdigit() else debounce
            )
        return replace(config, **overrides) if overrides else config

    def should_virtualize(self, row_count: int) -> bool:
        """Whether a table of ``row_count`` rows should render through a window."""
        return row_count >= self.virtualization_threshold


__all__ = ["ClientConfig"]
