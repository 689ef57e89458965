"""
OpenRouterAdapter - OpenRouter implementation of ChatProvider.

Cloud inference adapter. Differences from LMStudioAdapter:
- Bearer credential, resolved lazily from a SettingsStore and cached
- Catalog carries pricing and context-window metadata
- Attribution headers (HTTP-Referer, X-Title) on every request
- Key usage lookup via /auth/key
"""

import logging
from typing import AsyncGenerator, Optional, Sequence, Union

import httpx

from zchat.adapters.schema import GenerationOptions
from zchat.config import (
    CLOUD_ERROR_RESPONSE,
    NO_RESPONSE,
    NOT_CONFIGURED_RESPONSE,
    ModelDescriptor,
    ModelPricing,
    Turn,
    UsageRecord,
    get_app_title,
    get_app_url,
    get_openrouter_api_key,
    get_openrouter_url,
)
from zchat.core import (
    StreamIOError,
    build_chat_payload,
    catalog_entries,
    fetch_json,
    first_fragment,
    stream_chat_completion,
)
from zchat.settings import SettingsStore

logger = logging.getLogger(__name__)


def _parse_model(entry: dict) -> ModelDescriptor:
    """
    Map one /models catalog entry to a ModelDescriptor.

    Raises:
        KeyError, TypeError, ValueError: entry has no usable id or a
            non-numeric context_length
    """
    if not isinstance(entry.get("id"), str) or not entry["id"]:
        raise KeyError("id")
    pricing = None
    raw_pricing = entry.get("pricing")
    if isinstance(raw_pricing, dict) and raw_pricing.get("prompt") is not None:
        completion = raw_pricing.get("completion")
        pricing = ModelPricing(
            prompt=str(raw_pricing["prompt"]),
            completion=str(completion) if completion is not None else None,
        )
    context_length = entry.get("context_length")
    return ModelDescriptor(
        id=entry["id"],
        name=entry.get("name") or entry["id"],
        pricing=pricing,
        context_length=int(context_length) if context_length is not None else None,
    )


class OpenRouterAdapter:
    """
    OpenRouter implementation of ChatProvider.

    The API key is the only mutable state: once resolved (explicitly, from
    OPENROUTER_API_KEY, or from the settings store) it is cached on the
    instance for subsequent calls.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        settings_store: Optional[SettingsStore] = None,
        app_url: Optional[str] = None,
        app_title: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API root, falls back to OPENROUTER_URL / the default
            api_key: Explicit key. Falls back to OPENROUTER_API_KEY env var.
            settings_store: Looked up lazily when no key is held
            app_url: HTTP-Referer attribution, falls back to ZCHAT_APP_URL
            app_title: X-Title attribution, falls back to ZCHAT_APP_TITLE
            transport: Optional httpx transport (tests, proxies)
        """
        self.base_url = (base_url or get_openrouter_url()).rstrip("/")
        self._api_key = api_key or get_openrouter_api_key() or ""
        self._settings_store = settings_store
        self.app_url = app_url or get_app_url()
        self.app_title = app_title or get_app_title()
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def set_api_key(self, api_key: str) -> None:
        """Replace the cached key (e.g. after the user edits settings)."""
        self._api_key = api_key or ""

    async def ensure_api_key(self) -> bool:
        """Resolve the key from the settings store if none is cached yet."""
        if self._api_key or self._settings_store is None:
            return self.is_configured()
        try:
            self._api_key = (await self._settings_store.get_cloud_api_key()) or ""
        except Exception as e:
            logger.error("Failed to load OpenRouter API key: %s", e)
        return self.is_configured()

    async def is_ready(self) -> bool:
        return await self.ensure_api_key()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.app_url,
            "X-Title": self.app_title,
        }

    async def list_models(self) -> list[ModelDescriptor]:
        """Return the full catalog; empty list when unconfigured or on error."""
        if not await self.ensure_api_key():
            logger.warning("OpenRouter API key not configured")
            return []
        try:
            data = await fetch_json(
                f"{self.base_url}/models",
                headers=self._headers(),
                transport=self._transport,
            )
        except Exception as e:
            logger.error("Error fetching OpenRouter models: %s", e)
            return []

        models = []
        for entry in catalog_entries(data):
            try:
                models.append(_parse_model(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed OpenRouter model entry %r: %s", entry.get("id"), e)
        return models

    async def stream_completion(
        self,
        turns: Sequence[Union[Turn, dict]],
        model_id: str,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Stream completion from OpenRouter.

        Without a credential, yields NOT_CONFIGURED_RESPONSE and sends nothing.
        ProviderRequestError propagates; connection and mid-stream failures
        end the stream with CLOUD_ERROR_RESPONSE.
        """
        if not await self.ensure_api_key():
            yield NOT_CONFIGURED_RESPONSE
            return

        options = options or GenerationOptions()
        payload = build_chat_payload(turns, model_id, options)

        try:
            async for chunk in stream_chat_completion(
                url=f"{self.base_url}/chat/completions",
                payload=payload,
                timeout_seconds=options.timeout_seconds,
                headers=self._headers(),
                transport=self._transport,
            ):
                yield chunk
        except (httpx.HTTPError, StreamIOError) as e:
            logger.error("OpenRouter error for '%s': %s", model_id, e)
            yield CLOUD_ERROR_RESPONSE

    async def get_single_response(
        self,
        turns: Sequence[Union[Turn, dict]],
        model_id: str,
    ) -> str:
        return await first_fragment(
            self.stream_completion(turns, model_id, GenerationOptions(stream=False)),
            NO_RESPONSE,
        )

    async def get_usage(self) -> Optional[UsageRecord]:
        """Fetch key usage info. None when unconfigured or on any failure."""
        if not await self.ensure_api_key():
            return None
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.get(
                    f"{self.base_url}/auth/key", headers=self._headers()
                )
            if not response.is_success:
                logger.warning("OpenRouter usage lookup failed: HTTP %s", response.status_code)
                return None
            data = response.json()
            # {"data": {"label": ..., "usage": ..., "limit": ..., ...}}
            return UsageRecord.model_validate(data.get("data") or {})
        except Exception as e:
            logger.error("Error fetching OpenRouter usage: %s", e)
            return None
