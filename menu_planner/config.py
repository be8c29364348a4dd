"""Configuration loading and validation for the menu planner.

Loads settings from .env via python-dotenv. Everything is optional: the
assistant needs ``ANTHROPIC_API_KEY`` and the cloud mirror needs
``CLOUD_SYNC_URL`` plus ``CLOUD_SYNC_ACCESS_TOKEN``; without them those
features are simply off.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from menu_planner.bundle_codec import DEFAULT_MENU_NAME
from menu_planner.claude_utils import DEFAULT_ASSISTANT_MODEL
from menu_planner.cloud_sync import DEFAULT_DEBOUNCE_SECONDS

if TYPE_CHECKING:
    from pathlib import Path


class ConfigError(Exception):
    """Raised when configuration is invalid."""


@dataclass(frozen=True)
class Config:
    """Typed, validated application configuration."""

    # Local storage
    database_path: str = "menu_planner.db"
    default_menu_name: str = DEFAULT_MENU_NAME

    # Assistant (optional)
    anthropic_api_key: str = ""
    assistant_model: str = DEFAULT_ASSISTANT_MODEL

    # Cloud mirror (optional)
    cloud_sync_url: str = ""
    cloud_sync_api_key: str = ""
    cloud_sync_access_token: str = ""
    cloud_sync_debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS


def load_config(env_path: str | Path | None = None) -> Config:
    """Load and validate configuration from environment / .env file.

    Args:
        env_path: Optional path to .env file. If None, searches from cwd upward.

    Returns:
        Validated Config instance.

    Raises:
        ConfigError: If a value is malformed.
    """
    load_dotenv(dotenv_path=env_path)

    debounce_raw = os.getenv(
        "CLOUD_SYNC_DEBOUNCE_SECONDS", str(DEFAULT_DEBOUNCE_SECONDS)
    )
    try:
        debounce = float(debounce_raw)
    except ValueError as err:
        raise ConfigError(
            f"CLOUD_SYNC_DEBOUNCE_SECONDS must be a number, got: {debounce_raw!r}"
        ) from err
    if debounce < 0:
        raise ConfigError(
            f"CLOUD_SYNC_DEBOUNCE_SECONDS must not be negative, got: {debounce_raw!r}"
        )

    default_menu_name = os.getenv("DEFAULT_MENU_NAME", DEFAULT_MENU_NAME).strip()
    if not default_menu_name:
        raise ConfigError("DEFAULT_MENU_NAME must not be blank")

    return Config(
        database_path=os.getenv("DATABASE_PATH", "menu_planner.db"),
        default_menu_name=default_menu_name,
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
        assistant_model=os.getenv("ASSISTANT_MODEL", DEFAULT_ASSISTANT_MODEL),
        cloud_sync_url=os.getenv("CLOUD_SYNC_URL", ""),
        cloud_sync_api_key=os.getenv("CLOUD_SYNC_API_KEY", ""),
        cloud_sync_access_token=os.getenv("CLOUD_SYNC_ACCESS_TOKEN", ""),
        cloud_sync_debounce_seconds=debounce,
    )
