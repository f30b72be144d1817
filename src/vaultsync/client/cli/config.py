"""Configuration utilities for the vaultsync CLI.

This module provides shared configuration functions used across CLI commands.
Secrets are not stored here; see vaultsync.client.keystore.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from vaultsync.core.config import Settings


def get_config_dir() -> Path:
    """Get the configuration directory for vaultsync.

    Returns:
        Path to ~/.vaultsync or equivalent.
    """
    return Path.home() / ".vaultsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def load_settings() -> Settings:
    """Load settings, falling back to defaults for missing keys."""
    return Settings.from_dict(load_config())


def save_settings(settings: Settings) -> None:
    save_config(settings.to_dict())


def is_configured() -> bool:
    """Check whether `vaultsync connect` has been run."""
    return get_config_file().exists()
