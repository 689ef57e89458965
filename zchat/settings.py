"""
Settings store interface consumed by the cloud adapter.

Persistence of user settings lives elsewhere; the core only ever reads
the stored OpenRouter key through SettingsStore.get_cloud_api_key().
"""

from typing import Optional, Protocol

from zchat.config import UserSettings, get_openrouter_api_key


class SettingsStore(Protocol):
    """Read-only view of per-user settings."""

    async def get_cloud_api_key(self) -> str:
        """Return the stored OpenRouter API key, or "" if none is set."""
        ...


class StaticSettingsStore:
    """Serves a fixed UserSettings instance (CLI, tests)."""

    def __init__(self, settings: Optional[UserSettings] = None):
        self.settings = settings or UserSettings()

    async def get_cloud_api_key(self) -> str:
        return self.settings.openrouter_api_key


class EnvSettingsStore:
    """Reads the key from OPENROUTER_API_KEY on every lookup."""

    async def get_cloud_api_key(self) -> str:
        return get_openrouter_api_key() or ""
