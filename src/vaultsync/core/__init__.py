"""Core module - Shared configuration and types."""

from vaultsync.core.config import (
    DEFAULT_SYNC_INTERVAL,
    MAX_SYNC_INTERVAL,
    MIN_SYNC_INTERVAL,
    ServerConfig,
    Settings,
    clamp_interval,
)
from vaultsync.core.types import ConfigStatus, OutcomeKind, SyncOutcome

__all__ = [
    # Config
    "DEFAULT_SYNC_INTERVAL",
    "MAX_SYNC_INTERVAL",
    "MIN_SYNC_INTERVAL",
    "ServerConfig",
    "Settings",
    "clamp_interval",
    # Types
    "ConfigStatus",
    "OutcomeKind",
    "SyncOutcome",
]
