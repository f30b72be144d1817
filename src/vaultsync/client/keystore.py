"""Secure token storage for vaultsync.

This module provides:
- CredentialStore: keeps the access/refresh token pair in the OS keyring

Tokens never go to config.json; only the non-secret settings live there.
"""

from __future__ import annotations

import json
import logging

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from vaultsync.client.auth import Credentials

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "vaultsync"
KEYRING_USERNAME = "credentials"


class KeyStoreError(Exception):
    """Exception raised when the keyring cannot be used."""


class CredentialStore:
    """Loads and saves Credentials in the OS keyring."""

    def __init__(
        self,
        service: str = KEYRING_SERVICE,
        username: str = KEYRING_USERNAME,
    ) -> None:
        self._service = service
        self._username = username

    def load(self) -> Credentials:
        """Load stored credentials.

        Returns:
            Stored credentials, or empty Credentials if none are stored.
        """
        try:
            raw = keyring.get_password(self._service, self._username)
        except KeyringError as e:
            raise KeyStoreError(f"Keyring unavailable: {e}") from e
        if not raw:
            return Credentials()
        try:
            return Credentials.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.warning(f"Ignoring corrupted keyring entry: {e}")
            return Credentials()

    def save(self, credentials: Credentials) -> None:
        """Persist credentials, replacing any previous entry."""
        try:
            keyring.set_password(
                self._service,
                self._username,
                json.dumps(credentials.to_dict()),
            )
        except KeyringError as e:
            raise KeyStoreError(f"Keyring unavailable: {e}") from e

    def clear(self) -> None:
        """Remove stored credentials, if any."""
        try:
            keyring.delete_password(self._service, self._username)
        except PasswordDeleteError:
            pass
        except KeyringError as e:
            raise KeyStoreError(f"Keyring unavailable: {e}") from e
