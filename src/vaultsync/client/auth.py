"""Access/refresh token management.

This module provides:
- Credentials: the short-lived access token, its expiry and the refresh token
- CredentialManager: keeps a valid access token available for authenticated
  calls, renewing it through POST /auth/refresh when needed

Renewal is deduplicated: concurrent callers that need a new token all await
the same in-flight exchange instead of issuing parallel refresh calls. The
refresh token rotates on every successful exchange.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

import httpx

from vaultsync.client.errors import (
    APIError,
    AuthenticationError,
    RenewalExpiredError,
    check_response,
)
from vaultsync.client.sync.retry import RENEWAL_POLICY, RequestExecutor, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Never use an access token this close to its expiry
SAFETY_MARGIN = 60.0  # seconds

# Refresh responses meaning the refresh token itself is no good
REJECTED_STATUSES = frozenset({400, 401, 403})

REFRESH_PATH = "/auth/refresh"


@dataclass
class Credentials:
    """Token pair held by the CredentialManager.

    Attributes:
        refresh_token: Long-lived secret exchanged for a new token pair.
        access_token: Short-lived bearer token ("" when unset).
        access_expires_at: Expiry of access_token as epoch seconds (0 = unset).
    """

    refresh_token: str = ""
    access_token: str = ""
    access_expires_at: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credentials:
        """Create from a stored dictionary."""
        return cls(
            refresh_token=str(data.get("refresh_token", "")),
            access_token=str(data.get("access_token", "")),
            access_expires_at=float(data.get("access_expires_at", 0.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_expiry(value: Any) -> float:
    """Decode an access_expiry value into epoch seconds.

    Accepts ISO-8601 strings and numeric epochs; numbers above 1e11 are
    taken as milliseconds. Naive datetimes are taken as UTC.
    """
    if isinstance(value, int | float):
        number = float(value)
    else:
        text = str(value).strip()
        try:
            number = float(text)
        except ValueError:
            parsed = datetime.fromisoformat(text)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.timestamp()
    return number / 1000.0 if number > 1e11 else number


class CredentialManager:
    """Ensures a valid access token exists before any authenticated call."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        executor: RequestExecutor,
        credentials: Credentials | None = None,
        persist: Callable[[Credentials], None] | None = None,
        clock: Callable[[], float] = time.time,
        policy: RetryPolicy = RENEWAL_POLICY,
    ) -> None:
        """Initialize the credential manager.

        Args:
            http: HTTP client bound to the server base URL.
            executor: Executor used for the refresh call.
            credentials: Initial token state.
            persist: Called with the new state whenever tokens change.
            clock: Returns the current time as epoch seconds.
            policy: Retry policy for the refresh call.
        """
        self._http = http
        self._executor = executor
        self._credentials = credentials or Credentials()
        self._persist = persist
        self._clock = clock
        self._policy = policy
        self._pending: asyncio.Task[None] | None = None

        # Called when a renewed pair could not be persisted
        self.on_persist_failed: Callable[[Exception], None] | None = None

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def access_token(self) -> str:
        return self._credentials.access_token

    @property
    def refreshing(self) -> bool:
        """True while a refresh exchange is in flight."""
        return self._pending is not None

    def is_valid(self) -> bool:
        """Check the access token is set and outside the safety margin."""
        creds = self._credentials
        if not creds.access_token:
            return False
        return self._clock() < creds.access_expires_at - SAFETY_MARGIN

    def set_refresh_token(self, token: str) -> None:
        """Install a freshly pasted refresh token, dropping the old session.

        Whitespace is stripped since pasted tokens often wrap across lines.
        """
        self._credentials = Credentials(refresh_token="".join(token.split()))
        self._save()

    def clear(self) -> None:
        """Forget all tokens."""
        self._credentials = Credentials()
        self._save()

    async def ensure_valid(self) -> None:
        """Renew the access token if it is missing or about to expire.

        Raises:
            RenewalExpiredError: If the refresh token is missing or rejected.
        """
        if self.is_valid():
            return
        await self.refresh()

    async def refresh(self) -> None:
        """Exchange the refresh token for a new pair, deduplicating callers.

        The first caller starts the exchange; every caller (including later
        ones that arrive while it runs) observes the same result. The shared
        handle is cleared as soon as the exchange settles.
        """
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._exchange())
        else:
            logger.debug("Token refresh already in flight, joining it")
        await asyncio.shield(self._pending)

    async def authorized(self, send: Callable[[str], Awaitable[T]]) -> T:
        """Run an authenticated call.

        If the server rejects a locally valid token (revoked server-side),
        renew once and retry once.

        Args:
            send: Coroutine factory taking the access token.

        Returns:
            Result of send.
        """
        await self.ensure_valid()
        try:
            return await send(self.access_token)
        except AuthenticationError:
            logger.warning("Access token rejected by server, forcing renewal")
            await self.refresh()
            return await send(self.access_token)

    async def _post_refresh(self, refresh_token: str) -> httpx.Response:
        response = await self._http.post(
            REFRESH_PATH, json={"refresh_token": refresh_token}
        )
        return check_response(response)

    async def _exchange(self) -> None:
        try:
            refresh_token = self._credentials.refresh_token
            if not refresh_token:
                raise RenewalExpiredError("No refresh token configured")

            try:
                response = await self._executor.execute(
                    lambda: self._post_refresh(refresh_token), self._policy
                )
            except APIError as e:
                if e.status_code not in REJECTED_STATUSES:
                    raise
                logger.error(f"Refresh token rejected by server ({e.status_code})")
                self._credentials = Credentials(refresh_token=refresh_token)
                self._save()
                raise RenewalExpiredError(
                    "Refresh token expired or revoked, re-authentication required",
                    e.status_code,
                ) from e

            data = response.json()
            self._credentials = Credentials(
                refresh_token=data["renewal"],
                access_token=data["access"],
                access_expires_at=parse_expiry(data["access_expiry"]),
            )
            self._save_renewed()
            logger.info("Access token renewed")
        finally:
            self._pending = None

    def _save(self) -> None:
        if self._persist:
            self._persist(self._credentials)

    def _save_renewed(self) -> None:
        """Persist a freshly rotated pair.

        The previous refresh token is already spent server-side, so on failure
        the new pair is kept in memory and the failure is reported instead of
        raised.
        """
        try:
            self._save()
        except Exception as e:
            logger.error(
                f"Renewed tokens could not be saved, session kept in memory only: {e}"
            )
            if self.on_persist_failed:
                self.on_persist_failed(e)
