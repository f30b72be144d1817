"""Shared types for vaultsync.

This module defines the small enums and value types exchanged between the
sync core and its UI collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConfigStatus(str, Enum):
    """Coarse sync status of the shared configuration (categories, tags)."""

    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"
    OFFLINE = "offline"

    @property
    def emoji(self) -> str:
        """Status indicator for compact displays."""
        return _STATUS_EMOJI[self]

    @property
    def label(self) -> str:
        """Human readable label."""
        return _STATUS_LABELS[self]


_STATUS_EMOJI = {
    ConfigStatus.SYNCED: "🟢",
    ConfigStatus.PENDING: "🟡",
    ConfigStatus.ERROR: "🔴",
    ConfigStatus.OFFLINE: "⚫",
}

_STATUS_LABELS = {
    ConfigStatus.SYNCED: "Connected",
    ConfigStatus.PENDING: "Syncing...",
    ConfigStatus.ERROR: "Connection error",
    ConfigStatus.OFFLINE: "Server unreachable",
}


class OutcomeKind(str, Enum):
    """Kind of result of a sync request."""

    SKIPPED = "skipped"
    NO_NEW_DATA = "no_new_data"
    WRITTEN = "written"


@dataclass(frozen=True)
class SyncOutcome:
    """Result of a sync request as seen by the caller.

    SKIPPED means nothing happened (another cycle was running or the manual
    cooldown was active); it is not a failure.
    """

    kind: OutcomeKind
    count: int = 0

    @classmethod
    def skipped(cls) -> SyncOutcome:
        return cls(OutcomeKind.SKIPPED)

    @classmethod
    def no_new_data(cls) -> SyncOutcome:
        return cls(OutcomeKind.NO_NEW_DATA)

    @classmethod
    def written(cls, count: int) -> SyncOutcome:
        if count <= 0:
            return cls.no_new_data()
        return cls(OutcomeKind.WRITTEN, count)

    def __str__(self) -> str:
        if self.kind is OutcomeKind.WRITTEN:
            return f"{self.count} note(s) written"
        if self.kind is OutcomeKind.NO_NEW_DATA:
            return "no new notes"
        return "skipped"
