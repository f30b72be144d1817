"""Sync machinery for notes and shared configuration.

Architecture:
    SyncScheduler -> NoteSyncEngine -> ApiClient / NoteStore
    ConfigFileWatcher -> ConfigSync -> ApiClient / config files

Components:
- **RequestExecutor**: per-attempt timeout and classified retry with backoff
- **SyncScheduler**: one cancellable timer, re-armed after every cycle
- **NoteSyncEngine**: single-flight note cycles with failure backoff
- **ConfigSync**: debounced, hash-deduplicated config push and pull
- **ConfigFileWatcher**: watchdog observer feeding ConfigSync
"""

from vaultsync.client.sync.config_sync import ConfigSync, content_hash
from vaultsync.client.sync.engine import NoteSyncEngine, build_batch_siblings
from vaultsync.client.sync.retry import (
    RENEWAL_POLICY,
    SHORT_POLICY,
    RequestExecutor,
    RetryPolicy,
    is_retryable,
)
from vaultsync.client.sync.scheduler import SyncScheduler
from vaultsync.client.sync.watcher import ConfigFileWatcher

__all__ = [
    "RENEWAL_POLICY",
    "SHORT_POLICY",
    "ConfigFileWatcher",
    "ConfigSync",
    "NoteSyncEngine",
    "RequestExecutor",
    "RetryPolicy",
    "SyncScheduler",
    "build_batch_siblings",
    "content_hash",
    "is_retryable",
]
