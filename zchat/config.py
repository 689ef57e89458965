"""
Configuration constants and Pydantic models for zchat.
"""

import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_LMSTUDIO_URL: str = "http://localhost:1234"
DEFAULT_OPENROUTER_URL: str = "https://openrouter.ai/api/v1"

DEFAULT_TEMPERATURE: float = 0.7
DEFAULT_MAX_TOKENS: int = 2048
DEFAULT_TIMEOUT_SECONDS: float = 300.0  # 5 minutes
DEFAULT_PROBE_TIMEOUT_SECONDS: float = 5.0
DEFAULT_MAX_CONTEXT_LENGTH: int = 30000

# Attribution headers sent to OpenRouter on every request
DEFAULT_APP_URL: str = "http://localhost"
DEFAULT_APP_TITLE: str = "ZChat"


# ─────────────────────────────────────────────────────────────────────
# FALLBACK RESPONSES - yielded as assistant text instead of raising
# ─────────────────────────────────────────────────────────────────────

NO_RESPONSE: str = "No response received"
ERROR_RESPONSE: str = "Sorry, I encountered an error while processing your request."
CLOUD_ERROR_RESPONSE: str = (
    "Sorry, I encountered an error while processing your request. "
    "Please check your OpenRouter API key and try again."
)
NOT_CONFIGURED_RESPONSE: str = (
    "OpenRouter API key not configured. Please set your API key in the settings."
)


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def _env_float(key: str, default: float) -> float:
    try:
        return float(os.environ.get(key, default))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.environ.get(key, default))
    except ValueError:
        return default


def get_lmstudio_url() -> str:
    """
    Get the LM Studio base URL.

    Set LMSTUDIO_URL in .env (default: http://localhost:1234).
    """
    return os.environ.get("LMSTUDIO_URL", "").strip() or DEFAULT_LMSTUDIO_URL


def get_openrouter_url() -> str:
    """
    Get the OpenRouter API base URL.

    Set OPENROUTER_URL in .env (default: https://openrouter.ai/api/v1).
    """
    return os.environ.get("OPENROUTER_URL", "").strip() or DEFAULT_OPENROUTER_URL


def get_openrouter_api_key() -> Optional[str]:
    """Get the OpenRouter API key from environment, None if unset or blank."""
    key = os.environ.get("OPENROUTER_API_KEY", "").strip()
    return key or None


def get_app_url() -> str:
    return os.environ.get("ZCHAT_APP_URL", "").strip() or DEFAULT_APP_URL


def get_app_title() -> str:
    return os.environ.get("ZCHAT_APP_TITLE", "").strip() or DEFAULT_APP_TITLE


def get_probe_timeout() -> float:
    """
    Get the availability probe timeout in seconds.

    Set ZCHAT_PROBE_TIMEOUT in .env (default: 5).
    """
    return _env_float("ZCHAT_PROBE_TIMEOUT", DEFAULT_PROBE_TIMEOUT_SECONDS)


# ─────────────────────────────────────────────────────────────────────
# RETRY CONFIGURATION - For catalog requests
# ─────────────────────────────────────────────────────────────────────

def get_retry_attempts() -> int:
    """
    Get max retry attempts from environment or default.

    Set ZCHAT_RETRY_ATTEMPTS in .env (default: 3).
    """
    return max(1, _env_int("ZCHAT_RETRY_ATTEMPTS", 3))


def get_retry_min_wait() -> float:
    """
    Get minimum wait between retries in seconds.

    Set ZCHAT_RETRY_MIN_WAIT in .env (default: 1).
    """
    return _env_float("ZCHAT_RETRY_MIN_WAIT", 1.0)


def get_retry_max_wait() -> float:
    """
    Get maximum wait between retries in seconds.

    Set ZCHAT_RETRY_MAX_WAIT in .env (default: 10).
    """
    return _env_float("ZCHAT_RETRY_MAX_WAIT", 10.0)


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

class Provider(str, Enum):
    """Backend that serves a conversation."""
    LMSTUDIO = "lmstudio"  # local inference server
    OPENROUTER = "openrouter"  # cloud model router


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Turn(BaseModel):
    """A single message in a conversation. Never updated in place."""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)

    def to_openai(self) -> dict:
        """Wire form: role and content only."""
        return {"role": self.role, "content": self.content}


class Conversation(BaseModel):
    """A chat bound to one provider and model."""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    title: str = "New Chat"
    provider: Provider
    model: str
    system_prompt: Optional[str] = None


class ModelPricing(BaseModel):
    """Per-token prices as reported by the catalog (decimal strings)."""
    prompt: str
    completion: Optional[str] = None


class ModelDescriptor(BaseModel):
    """Catalog entry for a selectable model."""
    id: str
    name: str
    pricing: Optional[ModelPricing] = None
    context_length: Optional[int] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class UsageRecord(BaseModel):
    """Key usage info from OpenRouter's /auth/key endpoint."""
    model_config = ConfigDict(extra="allow")

    label: Optional[str] = None
    usage: Optional[float] = None
    limit: Optional[float] = None
    limit_remaining: Optional[float] = None
    is_free_tier: Optional[bool] = None


class UserSettings(BaseModel):
    """Per-user preferences as exposed by the settings store."""
    model_config = ConfigDict(use_enum_values=True)

    default_provider: Provider = Provider.LMSTUDIO
    default_model: str = ""
    lmstudio_url: str = DEFAULT_LMSTUDIO_URL
    openrouter_api_key: str = ""
    openrouter_url: str = DEFAULT_OPENROUTER_URL
    max_context_length: int = DEFAULT_MAX_CONTEXT_LENGTH

    @classmethod
    def from_env(cls, **overrides: Any) -> "UserSettings":
        """Build settings from environment variables, then apply overrides."""
        values = {
            "default_provider": os.environ.get("ZCHAT_DEFAULT_PROVIDER", "").strip() or Provider.LMSTUDIO,
            "default_model": os.environ.get("ZCHAT_DEFAULT_MODEL", "").strip(),
            "lmstudio_url": get_lmstudio_url(),
            "openrouter_url": get_openrouter_url(),
            "openrouter_api_key": get_openrouter_api_key() or "",
        }
        values.update(overrides)
        return cls(**values)
