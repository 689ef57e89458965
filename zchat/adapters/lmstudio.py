"""
LMStudioAdapter - local inference server implementation of ChatProvider.

LM Studio serves an OpenAI-compatible API without authentication. It may
simply not be running, so callers probe with check_availability() first.
"""

import logging
from typing import AsyncGenerator, Optional, Sequence, Union

import httpx

from zchat.adapters.schema import GenerationOptions
from zchat.config import (
    ERROR_RESPONSE,
    NO_RESPONSE,
    ModelDescriptor,
    Turn,
    get_lmstudio_url,
    get_probe_timeout,
)
from zchat.core import (
    StreamIOError,
    build_chat_payload,
    catalog_entries,
    fetch_json,
    first_fragment,
    stream_chat_completion,
)

logger = logging.getLogger(__name__)


class LMStudioAdapter:
    """
    LM Studio implementation of ChatProvider.

    Holds only immutable configuration; every call opens its own
    httpx client, so one instance can serve many conversations at once.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Server root, e.g. "http://localhost:1234".
                Falls back to LMSTUDIO_URL / the default.
            transport: Optional httpx transport (tests, proxies)
        """
        self.base_url = (base_url or get_lmstudio_url()).rstrip("/")
        self._transport = transport

    async def check_availability(self) -> bool:
        """Probe /v1/models with a short timeout. Never raises."""
        try:
            async with httpx.AsyncClient(
                timeout=get_probe_timeout(), transport=self._transport
            ) as client:
                response = await client.get(f"{self.base_url}/v1/models")
                return response.is_success
        except Exception as e:
            logger.warning("LM Studio not available at %s: %s", self.base_url, e)
            return False

    async def is_ready(self) -> bool:
        return await self.check_availability()

    async def list_models(self) -> list[ModelDescriptor]:
        """Return loaded models; empty list if the server can't be reached."""
        try:
            data = await fetch_json(f"{self.base_url}/v1/models", transport=self._transport)
        except Exception as e:
            logger.error("Error fetching LM Studio models from %s: %s", self.base_url, e)
            return []

        # LM Studio returns {"data": [{"id": "model-name", ...}, ...]}
        models = []
        for entry in catalog_entries(data):
            model_id = entry.get("id")
            if not isinstance(model_id, str) or not model_id:
                logger.warning("Skipping LM Studio model entry without id: %r", entry)
                continue
            models.append(ModelDescriptor(id=model_id, name=model_id))
        return models

    async def stream_completion(
        self,
        turns: Sequence[Union[Turn, dict]],
        model_id: str,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Stream completion from the LM Studio server.

        ProviderRequestError propagates; connection and mid-stream failures
        end the stream with ERROR_RESPONSE.
        """
        options = options or GenerationOptions()
        payload = build_chat_payload(turns, model_id, options)

        try:
            async for chunk in stream_chat_completion(
                url=f"{self.base_url}/v1/chat/completions",
                payload=payload,
                timeout_seconds=options.timeout_seconds,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            ):
                yield chunk
        except (httpx.HTTPError, StreamIOError) as e:
            logger.error("LM Studio error for '%s': %s", model_id, e)
            yield ERROR_RESPONSE

    async def get_single_response(
        self,
        turns: Sequence[Union[Turn, dict]],
        model_id: str,
    ) -> str:
        return await first_fragment(
            self.stream_completion(turns, model_id, GenerationOptions(stream=False)),
            NO_RESPONSE,
        )
