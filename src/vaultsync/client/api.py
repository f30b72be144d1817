"""HTTP client for the vaultsync server API.

This module provides:
- ApiClient: async HTTP client for communicating with the server
- Note sync operations (fetch unsynced, mark synced, reconcile archived)
- Config operations (categories, tags, first-contact init)
- User settings (digest reminders)

Retry lives in RequestExecutor and token handling in CredentialManager;
this module only routes and decodes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from vaultsync.client.auth import CredentialManager, Credentials
from vaultsync.client.errors import (
    APIError,
    AuthenticationError,
    NotFoundError,
    RenewalExpiredError,
    RequestTimeoutError,
    check_response,
)
from vaultsync.client.sync.retry import RequestExecutor
from vaultsync.core.config import ServerConfig

logger = logging.getLogger(__name__)

# category -> tag -> usage count
TagsRegistry = dict[str, dict[str, int]]


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class HealthStatus:
    """Server health response."""

    status: str
    version: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HealthStatus:
        return cls(status=str(data.get("status", "")), version=str(data.get("version", "")))


@dataclass
class Note:
    """A note produced server-side and waiting to be written locally.

    Attributes:
        id: Server identifier.
        name: Display name; also the basis of the local file name.
        content: Body text.
        category: Category path (e.g. "work/meetings").
        tags: Tag list.
        summary: Free-text summary.
        created_at: Creation timestamp (UTC).
        subcategory: Optional extra folder level below the category.
        append_to: Vault path of an existing note this one extends.
        source_batch_id: Shared by notes split from one source.
        action_items: Optional list of tasks.
        synced_at: When the server last considered it synced, if ever.
    """

    id: str
    name: str
    content: str
    category: str
    tags: list[str]
    summary: str
    created_at: datetime
    subcategory: str | None = None
    append_to: str | None = None
    source_batch_id: str | None = None
    action_items: list[str] = field(default_factory=list)
    synced_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Note:
        """Create from API response dictionary."""
        return cls(
            id=str(data["id"]),
            name=data["name"],
            content=data.get("content", ""),
            category=data.get("category", ""),
            tags=list(data.get("tags") or []),
            summary=data.get("summary", ""),
            created_at=parse_timestamp(data["created_at"]),
            subcategory=data.get("subcategory") or None,
            append_to=data.get("append_to") or None,
            source_batch_id=data.get("source_batch_id") or None,
            action_items=list(data.get("action_items") or []),
            synced_at=(
                parse_timestamp(data["synced_at"]) if data.get("synced_at") else None
            ),
        )


@dataclass
class UnsyncedBatch:
    """Result of fetch_unsynced."""

    notes: list[Note]
    server_time: str | None = None


@dataclass
class Category:
    """One category row shared between server and categories.md."""

    name: str
    description: str = ""
    reminder: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Category:
        return cls(
            name=data["name"],
            description=data.get("description") or "",
            reminder=data.get("reminder") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "description": self.description}
        if self.reminder:
            data["reminder"] = self.reminder
        return data


@dataclass
class InitResult:
    """Result of the first-contact init call."""

    categories_saved: int
    pending_notes: int


@dataclass
class ReminderSettings:
    """Server-side digest reminder settings."""

    enabled: bool = True
    send_time: int = 9
    timezone: str | None = None
    weekly_day: str = "monday"
    monthly_day: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReminderSettings:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class UserSettings:
    """User settings stored on the server."""

    reminders: ReminderSettings | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserSettings:
        reminders = data.get("reminders")
        return cls(
            reminders=ReminderSettings.from_dict(reminders) if reminders else None
        )


class ApiClient:
    """Async HTTP client for the vaultsync server API."""

    def __init__(
        self,
        config: ServerConfig,
        credentials: Credentials | None = None,
        persist: Callable[[Credentials], None] | None = None,
        executor: RequestExecutor | None = None,
    ) -> None:
        """Initialize the API client.

        Args:
            config: Server connection settings.
            credentials: Initial token state.
            persist: Called whenever the token pair changes.
            executor: Request executor (defaults to one using config.timeout).
        """
        self._config = config
        self._executor = executor or RequestExecutor(timeout=config.timeout)
        self._http = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={"Content-Type": "application/json"},
        )
        self._auth = CredentialManager(
            self._http, self._executor, credentials, persist=persist
        )

    @property
    def auth(self) -> CredentialManager:
        """Credential manager guarding authenticated calls."""
        return self._auth

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> ApiClient:
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        token: str | None = None,
        json: Any = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        response = await self._http.request(method, path, json=json, headers=headers)
        return check_response(response)

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        """Send an authenticated request and decode the JSON body."""

        async def send(token: str) -> httpx.Response:
            return await self._executor.execute(
                lambda: self._send(method, path, token, json)
            )

        response = await self._auth.authorized(send)
        if not response.content:
            return {}
        return response.json()

    # === Health check ===

    async def health(self) -> HealthStatus:
        """Check server health; needs no credentials.

        Returns:
            Server status and version.
        """
        response = await self._executor.execute(lambda: self._send("GET", "/health"))
        return HealthStatus.from_dict(response.json())

    async def is_reachable(self) -> bool:
        """Check if the server answers its health endpoint."""
        try:
            await self.health()
        except (APIError, httpx.HTTPError) as e:
            logger.debug(f"Health check failed: {e}")
            return False
        return True

    # === Notes ===

    async def fetch_unsynced(self) -> UnsyncedBatch:
        """Fetch notes the server has not yet seen acknowledged.

        Returns:
            Batch of notes in server order.
        """
        data = await self._request("GET", "/notes/unsynced")
        return UnsyncedBatch(
            notes=[Note.from_dict(n) for n in data.get("notes", [])],
            server_time=data.get("server_time"),
        )

    async def mark_synced(
        self,
        ids: list[str],
        path_map: dict[str, str] | None = None,
    ) -> int:
        """Acknowledge notes as written locally.

        Args:
            ids: Note ids to mark synced.
            path_map: Optional note id -> vault path of the written file.

        Returns:
            Number of notes the server marked.
        """
        body: dict[str, Any] = {"ids": ids}
        if path_map:
            body["path_map"] = path_map
        data = await self._request("POST", "/notes/mark-synced", json=body)
        return int(data.get("synced_count", 0))

    async def reconcile_archived(self, paths: list[str]) -> int:
        """Report vault paths the user has archived locally.

        Returns:
            Number of notes the server reconciled.
        """
        data = await self._request(
            "POST", "/notes/reconcile-archived", json={"paths": paths}
        )
        return int(data.get("reconciled", 0))

    # === Categories ===

    async def get_categories(self) -> list[Category]:
        data = await self._request("GET", "/categories")
        return [Category.from_dict(c) for c in data.get("categories", [])]

    async def update_categories(self, categories: list[Category]) -> list[Category]:
        data = await self._request(
            "PUT",
            "/categories",
            json={"categories": [c.to_dict() for c in categories]},
        )
        return [Category.from_dict(c) for c in data.get("categories", [])]

    async def init(self, categories: list[Category]) -> InitResult:
        """Seed the server with local categories on first contact.

        The server may also start processing notes that were waiting for
        categories.

        Returns:
            Saved category count and pending note count.
        """
        data = await self._request(
            "POST",
            "/init",
            json={"categories": [c.to_dict() for c in categories]},
        )
        return InitResult(
            categories_saved=int(data.get("categories_saved", 0)),
            pending_notes=int(data.get("pending_notes", 0)),
        )

    # === Tags ===

    async def get_tags(self) -> TagsRegistry:
        data = await self._request("GET", "/tags")
        return dict(data.get("registry", {}))

    async def update_tags(self, registry: TagsRegistry) -> TagsRegistry:
        data = await self._request("PUT", "/tags", json={"registry": registry})
        return dict(data.get("registry", {}))

    # === User settings ===

    async def get_user_settings(self) -> UserSettings:
        data = await self._request("GET", "/user/settings")
        return UserSettings.from_dict(data)

    async def update_user_settings(self, reminders: ReminderSettings) -> UserSettings:
        data = await self._request(
            "PATCH", "/user/settings", json={"reminders": reminders.to_dict()}
        )
        return UserSettings.from_dict(data)


__all__ = [
    "APIError",
    "ApiClient",
    "AuthenticationError",
    "Category",
    "HealthStatus",
    "InitResult",
    "Note",
    "NotFoundError",
    "ReminderSettings",
    "RenewalExpiredError",
    "RequestTimeoutError",
    "TagsRegistry",
    "UnsyncedBatch",
    "UserSettings",
]
