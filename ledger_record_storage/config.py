"""
Store configuration.

Configuration can be provided directly, via environment variables,
or from the ``ledger_store`` section of a YAML settings file.

Environment Variables:
    LEDGER_STORE_CHANNEL: Channel name (plaintext, zero-padded)
    LEDGER_STORE_CHANNEL_HEX: Channel identifier as hex (overrides the name)
    LEDGER_STORE_CHANNEL_WIDTH: Channel width in bytes (default: 10)
    LEDGER_STORE_START_HEIGHT: Position to check first for existing metadata
    LEDGER_STORE_SEARCH_LIMIT: Discovery lookback window (default: 1000)
    LEDGER_STORE_STRATEGY: Lookup strategy, indexed or scan (default: indexed)
    LEDGER_STORE_BACKEND: celestia, local or memory (default: celestia)
    LEDGER_STORE_ENDPOINT: Ledger node RPC URL
    LEDGER_STORE_LOCAL_PATH: Directory for the local file ledger
    CELESTIA_NODE_AUTH_TOKEN: Node auth token
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .channel import DEFAULT_CHANNEL_WIDTH, Channel
from .discovery import DEFAULT_SEARCH_LIMIT
from .exceptions import ConfigurationError
from .ledger.base import LedgerClient
from .ledger.celestia import AUTH_TOKEN_ENV, DEFAULT_ENDPOINT, DEFAULT_TIMEOUT, CelestiaLedgerClient
from .ledger.local import LocalFileLedger
from .ledger.memory import InMemoryLedger
from .store import LookupStrategy

DEFAULT_SETTINGS_PATH = Path.home() / ".ledger_records" / "settings.yaml"


class LedgerBackend(Enum):
    """Which ledger client to build."""

    CELESTIA = "celestia"
    LOCAL = "local"
    MEMORY = "memory"


def _parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError as e:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(field_name, f"expected one of {choices}", str(value)) from e


def _parse_int(value: Any, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(field_name, "expected an integer", str(value)) from e


@dataclass
class StoreConfig:
    """Configuration for a record store and its ledger client.

    Attributes:
        channel: Channel name, zero-padded to ``channel_width``
        channel_hex: Channel identifier as hex; takes precedence over ``channel``
        channel_width: Fixed channel width for this deployment
        start_hint: Position to check first for existing metadata
        search_limit: Discovery lookback window in positions
        strategy: Lookup strategy
        backend: Ledger backend
        endpoint: Ledger node RPC URL (celestia backend)
        auth_token: Ledger node auth token (celestia backend)
        local_path: Directory for the local file ledger
        request_timeout: Per-request timeout in seconds
    """

    channel: str | None = None
    channel_hex: str | None = None
    channel_width: int = DEFAULT_CHANNEL_WIDTH
    start_hint: int | None = None
    search_limit: int = DEFAULT_SEARCH_LIMIT
    strategy: LookupStrategy = LookupStrategy.INDEXED
    backend: LedgerBackend = LedgerBackend.CELESTIA
    endpoint: str = DEFAULT_ENDPOINT
    auth_token: str | None = None
    local_path: str | None = None
    request_timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        self.strategy = _parse_enum(LookupStrategy, self.strategy, "strategy")
        self.backend = _parse_enum(LedgerBackend, self.backend, "backend")
        if self.search_limit < 0:
            raise ConfigurationError("search_limit", "must not be negative", str(self.search_limit))
        if self.start_hint is not None and self.start_hint < 0:
            raise ConfigurationError("start_hint", "must not be negative", str(self.start_hint))

    @classmethod
    def from_environment(cls, **overrides: Any) -> StoreConfig:
        """Create configuration from environment variables.

        Args:
            **overrides: Values that take precedence over the environment

        Returns:
            StoreConfig populated from environment variables
        """
        width = _parse_int(os.environ.get("LEDGER_STORE_CHANNEL_WIDTH"), "channel_width")
        limit = _parse_int(os.environ.get("LEDGER_STORE_SEARCH_LIMIT"), "search_limit")
        values: dict[str, Any] = {
            "channel": os.environ.get("LEDGER_STORE_CHANNEL"),
            "channel_hex": os.environ.get("LEDGER_STORE_CHANNEL_HEX"),
            "channel_width": DEFAULT_CHANNEL_WIDTH if width is None else width,
            "start_hint": _parse_int(os.environ.get("LEDGER_STORE_START_HEIGHT"), "start_hint"),
            "search_limit": DEFAULT_SEARCH_LIMIT if limit is None else limit,
            "strategy": os.environ.get("LEDGER_STORE_STRATEGY", LookupStrategy.INDEXED.value),
            "backend": os.environ.get("LEDGER_STORE_BACKEND", LedgerBackend.CELESTIA.value),
            "endpoint": os.environ.get("LEDGER_STORE_ENDPOINT", DEFAULT_ENDPOINT),
            "auth_token": os.environ.get(AUTH_TOKEN_ENV),
            "local_path": os.environ.get("LEDGER_STORE_LOCAL_PATH"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path | None = None, **overrides: Any) -> StoreConfig:
        """Create configuration from a YAML settings file.

        ```yaml
        ledger_store:
          channel: "demo"
          backend: celestia
          endpoint: "http://localhost:26658"
          strategy: indexed
          search_limit: 1000
        ```

        A missing file or section yields the defaults. The auth token
        falls back to ``CELESTIA_NODE_AUTH_TOKEN``.
        """
        settings_path = path or DEFAULT_SETTINGS_PATH
        section: dict[str, Any] = {}
        if settings_path.exists():
            try:
                loaded = yaml.safe_load(settings_path.read_text()) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError("settings", f"invalid YAML: {e}", str(settings_path)) from e
            if not isinstance(loaded, dict):
                raise ConfigurationError("settings", "expected a mapping", str(settings_path))
            section = dict(loaded.get("ledger_store") or {})

        known = set(cls.__dataclass_fields__)
        unknown = set(section) - known
        if unknown:
            raise ConfigurationError("settings", f"unknown keys: {', '.join(sorted(unknown))}")

        section.setdefault("auth_token", os.environ.get(AUTH_TOKEN_ENV))
        section.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**section)

    def channel_id(self) -> Channel:
        """Build the channel identifier.

        Raises:
            ConfigurationError: If no channel was configured
            InvalidChannelError: If the identifier has the wrong width
        """
        if self.channel_hex:
            return Channel.from_hex(self.channel_hex, self.channel_width)
        if self.channel:
            return Channel.from_plaintext(self.channel, self.channel_width)
        raise ConfigurationError("channel", "a channel name or hex identifier is required")

    def build_client(self) -> LedgerClient:
        """Build the ledger client for the configured backend."""
        if self.backend == LedgerBackend.MEMORY:
            return InMemoryLedger()
        if self.backend == LedgerBackend.LOCAL:
            return LocalFileLedger(self.local_path)
        return CelestiaLedgerClient(
            endpoint=self.endpoint,
            auth_token=self.auth_token,
            timeout=self.request_timeout,
        )
