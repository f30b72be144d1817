"""Shared configuration classes for vaultsync.

This module defines the connection settings used by the HTTP client and the
persisted user settings that drive the sync engine.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

MIN_SYNC_INTERVAL = 10
MAX_SYNC_INTERVAL = 300
DEFAULT_SYNC_INTERVAL = 60


@dataclass
class ServerConfig:
    """Configuration for connecting to a vaultsync server.

    Attributes:
        server_url: Base URL of the server (e.g., "https://notes.example.com").
        timeout: Per-attempt request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


def clamp_interval(seconds: int) -> int:
    """Clamp a sync interval to the supported range."""
    return max(MIN_SYNC_INTERVAL, min(MAX_SYNC_INTERVAL, int(seconds)))


@dataclass
class Settings:
    """Persisted client settings (secrets live in the keyring, not here).

    Attributes:
        endpoint: Server URL.
        sync_interval_s: Seconds between scheduled syncs, clamped to [10, 300].
        base_folder: Folder inside the vault that receives synced notes.
        vault_root: Root directory of the local note collection.
        auto_sync: Whether `run` starts the recurring sync schedule.
    """

    endpoint: str = "http://localhost:8000"
    sync_interval_s: int = DEFAULT_SYNC_INTERVAL
    base_folder: str = "Notes"
    vault_root: str = field(default_factory=lambda: str(Path.home() / "Vault"))
    auto_sync: bool = True

    def __post_init__(self) -> None:
        self.sync_interval_s = clamp_interval(self.sync_interval_s)
        self.base_folder = self.base_folder.strip("/") or "Notes"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create from a config dictionary, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return asdict(self)

    @property
    def vault_path(self) -> Path:
        """Vault root as an expanded path."""
        return Path(self.vault_root).expanduser()

    def server_config(self) -> ServerConfig:
        """Build the connection config for the API client."""
        return ServerConfig(server_url=self.endpoint)
