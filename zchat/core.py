"""
Core logic: chat request mapping, SSE stream decoding, provider errors.

Both LM Studio and OpenRouter speak the OpenAI chat-completions dialect,
so everything below the adapters lives here and is shared.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Iterable, Optional, Union

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from zchat.config import Turn, get_retry_attempts, get_retry_min_wait, get_retry_max_wait

if TYPE_CHECKING:
    from zchat.adapters.schema import GenerationOptions

logger = logging.getLogger(__name__)

FRAME_MARKER = "data:"
DONE_SENTINEL = "[DONE]"

Extractor = Callable[[Any], Optional[str]]


# ─────────────────────────────────────────────────────────────────────
# ERRORS
# ─────────────────────────────────────────────────────────────────────

class ProviderError(Exception):
    """Base class for errors raised by provider adapters."""
    pass


class ProviderRequestError(ProviderError):
    """Non-success HTTP status on the request that starts a completion."""

    def __init__(self, status_code: int, body: str, message: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or parse_provider_error(status_code, body))


class StreamIOError(ProviderError):
    """Transport failure while reading a response body."""
    pass


def parse_provider_error(status_code: int, body: Union[str, bytes]) -> str:
    """Extract a user-friendly error message from an error response body."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(body)
    except ValueError:
        data = None
    # Both providers typically return {"error": {"message": "..."}}
    if isinstance(data, dict):
        error = data.get("error", {})
        if isinstance(error, dict):
            message = error.get("message", "")
            if message:
                return f"HTTP {status_code}: {message}"
        elif isinstance(error, str) and error:
            return f"HTTP {status_code}: {error}"
    return f"HTTP {status_code}: {body[:200]}"


# ─────────────────────────────────────────────────────────────────────
# REQUEST MAPPING
# ─────────────────────────────────────────────────────────────────────

def to_wire_messages(turns: Iterable[Union[Turn, dict]]) -> list[dict]:
    """
    Strip turns down to {"role", "content"} for the chat-completions API.

    Accepts Turn models or plain dicts (extra keys such as ids and
    timestamps are dropped).
    """
    messages = []
    for turn in turns:
        if isinstance(turn, Turn):
            messages.append(turn.to_openai())
        else:
            messages.append({"role": turn["role"], "content": turn["content"]})
    return messages


def build_chat_payload(
    messages: Iterable[Union[Turn, dict]],
    model_id: str,
    options: "GenerationOptions",
) -> dict:
    """Build the JSON body shared by both providers."""
    return {
        "model": model_id,
        "messages": to_wire_messages(messages),
        "temperature": options.temperature,
        "max_tokens": options.max_tokens,
        "stream": options.stream,
    }


# ─────────────────────────────────────────────────────────────────────
# RESPONSE EXTRACTORS
# ─────────────────────────────────────────────────────────────────────

def _first_choice(payload: Any) -> dict:
    if not isinstance(payload, dict):
        return {}
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return {}
    return choices[0]


def extract_delta_content(payload: Any) -> Optional[str]:
    """Incremental text of a streaming frame: choices[0].delta.content."""
    delta = _first_choice(payload).get("delta") or {}
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


def extract_message_content(payload: Any) -> Optional[str]:
    """Full text of a non-streaming response: choices[0].message.content."""
    message = _first_choice(payload).get("message") or {}
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


# ─────────────────────────────────────────────────────────────────────
# STREAM DECODER
# ─────────────────────────────────────────────────────────────────────

async def decode_sse_stream(
    response: httpx.Response,
    extractor: Extractor,
) -> AsyncGenerator[str, None]:
    """
    Decode "data: <json>" frames from a streaming response.

    Yields the extractor's text for each frame as soon as the frame's line
    is complete. Stops at "data: [DONE]" or end of body, whichever comes
    first. Frames that are not valid JSON, or whose shape the extractor
    can't handle, are skipped.

    Raises:
        StreamIOError: if the transport fails mid-body. Fragments already
            yielded stay with the caller.
    """
    try:
        async for line in response.aiter_lines():
            if not line.startswith(FRAME_MARKER):
                continue
            data = line[len(FRAME_MARKER):].strip()
            if data == DONE_SENTINEL:
                return

            try:
                parsed = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed frame: %r", data[:200])
                continue

            try:
                content = extractor(parsed)
            except (LookupError, TypeError, AttributeError, ValueError) as e:
                logger.debug("Skipping frame with unexpected shape (%s): %r", e, data[:200])
                continue
            if content and isinstance(content, str):
                yield content
    except httpx.TransportError as e:
        raise StreamIOError(f"Stream interrupted: {e}") from e


# ─────────────────────────────────────────────────────────────────────
# LLM CLIENT
# ─────────────────────────────────────────────────────────────────────

async def stream_chat_completion(
    url: str,
    payload: dict,
    timeout_seconds: float,
    headers: Optional[dict] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncGenerator[str, None]:
    """
    POST a chat-completions request and yield text as it arrives.

    With payload["stream"] false, the body is read whole and exactly one
    fragment is yielded (empty string if the response carries no text).

    Raises:
        ProviderRequestError: on any non-2xx status, before anything is yielded
        StreamIOError: if the body read fails
        httpx.HTTPError: if the request cannot be sent (connect error, timeout)
    """
    async with httpx.AsyncClient(timeout=timeout_seconds, transport=transport) as client:
        async with client.stream("POST", url, json=payload, headers=headers) as response:
            if not response.is_success:
                # Read the error body for streaming responses
                error_body = await response.aread()
                raise ProviderRequestError(
                    response.status_code,
                    error_body.decode("utf-8", errors="replace"),
                )

            if payload.get("stream", True):
                async for chunk in decode_sse_stream(response, extract_delta_content):
                    yield chunk
                return

            try:
                body = await response.aread()
            except httpx.TransportError as e:
                raise StreamIOError(f"Response body interrupted: {e}") from e
            try:
                data = json.loads(body)
            except ValueError:
                logger.warning("Non-JSON completion body from %s: %r", url, body[:200])
                data = None
            yield extract_message_content(data) or ""


async def first_fragment(stream: AsyncGenerator[str, None], fallback: str) -> str:
    """
    Return the first fragment of a completion stream, then close it.

    Falls back to `fallback` when the stream yields nothing or only empty text.
    """
    try:
        async for chunk in stream:
            return chunk or fallback
    finally:
        await stream.aclose()
    return fallback


async def fetch_json(
    url: str,
    headers: Optional[dict] = None,
    timeout_seconds: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """
    GET a JSON document, retrying transient transport errors.

    Raises:
        httpx.HTTPStatusError: on a 4xx/5xx status (not retried)
        httpx.TransportError: once retries are exhausted
    """

    @retry(
        stop=stop_after_attempt(get_retry_attempts()),
        wait=wait_exponential(multiplier=1, min=get_retry_min_wait(), max=get_retry_max_wait()),
        retry=retry_if_exception_type(httpx.TransportError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def get_with_retry() -> Any:
        async with httpx.AsyncClient(timeout=timeout_seconds, transport=transport) as client:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
            return response.json()

    return await get_with_retry()


def catalog_entries(document: Any) -> list[dict]:
    """Entries of a {"data": [...]} model listing; non-object entries are dropped."""
    entries = document.get("data") if isinstance(document, dict) else None
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]
