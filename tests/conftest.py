"""Shared fixtures."""

from collections.abc import Iterator
from unittest.mock import patch

import pytest
from keyring.errors import KeyringError, PasswordDeleteError


class FakeKeyring:
    """In-memory stand-in for the keyring backend."""

    def __init__(self) -> None:
        self.entries: dict[tuple[str, str], str] = {}
        self.locked = False

    def get_password(self, service: str, username: str) -> str | None:
        return self.entries.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        if self.locked:
            raise KeyringError("keyring is locked")
        self.entries[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        if (service, username) not in self.entries:
            raise PasswordDeleteError("not found")
        del self.entries[(service, username)]


@pytest.fixture
def fake_keyring() -> Iterator[FakeKeyring]:
    """Replace the OS keyring with an in-memory one."""
    fake = FakeKeyring()
    with (
        patch("vaultsync.client.keystore.keyring.get_password", fake.get_password),
        patch("vaultsync.client.keystore.keyring.set_password", fake.set_password),
        patch("vaultsync.client.keystore.keyring.delete_password", fake.delete_password),
    ):
        yield fake
