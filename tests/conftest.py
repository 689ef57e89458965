"""Shared test fixtures for zchat tests."""

import json

import httpx
import pytest


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_LMSTUDIO_URL = "http://lmstudio.test:1234"
MOCK_OPENROUTER_URL = "https://openrouter.test/api/v1"
MOCK_API_KEY = "sk-or-test-123"

MOCK_MODEL_1 = "llama-3.2-3b-instruct"
MOCK_MODEL_2 = "qwen2.5-7b-instruct"

MOCK_MANIFEST_RESPONSE = {
    "data": [
        {"id": MOCK_MODEL_1, "object": "model"},
        {"id": MOCK_MODEL_2, "object": "model"},
    ]
}

MOCK_CATALOG_RESPONSE = {
    "data": [
        {
            "id": "openai/gpt-4o-mini",
            "name": "OpenAI: GPT-4o-mini",
            "pricing": {"prompt": "0.00000015", "completion": "0.0000006", "image": "0"},
            "context_length": 128000,
        },
        {
            "id": "mistralai/mistral-7b-instruct:free",
            "name": "Mistral: Mistral 7B Instruct (free)",
            "pricing": {"prompt": "0", "completion": "0"},
            "context_length": 32768,
        },
        {"id": "some/bare-model"},
    ]
}

MOCK_COMPLETION_RESPONSE = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "created": 1699000000,
    "model": MOCK_MODEL_1,
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "The capital of France is Paris."
            },
            "finish_reason": "stop"
        }
    ],
    "usage": {
        "prompt_tokens": 10,
        "completion_tokens": 8,
        "total_tokens": 18
    }
}

MOCK_STREAMING_CHUNKS = [
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"llama-3.2-3b-instruct","choices":[{"index":0,"delta":{"role":"assistant","content":""},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"llama-3.2-3b-instruct","choices":[{"index":0,"delta":{"content":"The"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"llama-3.2-3b-instruct","choices":[{"index":0,"delta":{"content":" capital"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"llama-3.2-3b-instruct","choices":[{"index":0,"delta":{"content":" of"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"llama-3.2-3b-instruct","choices":[{"index":0,"delta":{"content":" France"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"llama-3.2-3b-instruct","choices":[{"index":0,"delta":{"content":" is"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"llama-3.2-3b-instruct","choices":[{"index":0,"delta":{"content":" Paris."},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"llama-3.2-3b-instruct","choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}',
    'data: [DONE]',
]

MOCK_USAGE_RESPONSE = {
    "data": {
        "label": "sk-or-v1-abc...xyz",
        "usage": 1.25,
        "limit": 10.0,
        "limit_remaining": 8.75,
        "is_free_tier": False,
        "rate_limit": {"requests": 10, "interval": "10s"},
    }
}


# ─────────────────────────────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────────────────────────────

def frame(content: str) -> str:
    """One SSE data line carrying a delta."""
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n"


def sse_body(*contents: str, done: bool = True) -> str:
    """Build an SSE body from delta contents, optionally terminated by [DONE]."""
    body = "".join(frame(c) + "\n" for c in contents)
    if done:
        body += "data: [DONE]\n\n"
    return body


class ChunkedStream(httpx.AsyncByteStream):
    """Async byte stream that delivers fixed chunks, then optionally fails."""

    def __init__(self, chunks, error: Exception = None):
        self._chunks = [c.encode() if isinstance(c, str) else c for c in chunks]
        self._error = error

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error


def streaming_response(chunks, error: Exception = None, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, stream=ChunkedStream(chunks, error))


# ─────────────────────────────────────────────────────────────────────
# FIXTURES
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate tests from the developer's .env and make retries instant."""
    for key in (
        "OPENROUTER_API_KEY",
        "LMSTUDIO_URL",
        "OPENROUTER_URL",
        "ZCHAT_APP_URL",
        "ZCHAT_APP_TITLE",
        "ZCHAT_PROBE_TIMEOUT",
        "ZCHAT_DEFAULT_PROVIDER",
        "ZCHAT_DEFAULT_MODEL",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ZCHAT_RETRY_ATTEMPTS", "3")
    monkeypatch.setenv("ZCHAT_RETRY_MIN_WAIT", "0")
    monkeypatch.setenv("ZCHAT_RETRY_MAX_WAIT", "0")


@pytest.fixture
def hello_turns():
    return [{"role": "user", "content": "Hello"}]


@pytest.fixture
def sample_turns():
    """Return a short conversation as Turn models."""
    from zchat.config import Turn
    return [
        Turn(role="user", content="What is the capital of France?"),
        Turn(role="assistant", content="The capital of France is Paris."),
        Turn(role="user", content="What about Germany?"),
    ]


@pytest.fixture
def mock_streaming_body():
    return "\n".join(MOCK_STREAMING_CHUNKS) + "\n"


@pytest.fixture
def lmstudio_adapter():
    from zchat.adapters.lmstudio import LMStudioAdapter
    return LMStudioAdapter(MOCK_LMSTUDIO_URL)


@pytest.fixture
def openrouter_adapter():
    from zchat.adapters.openrouter import OpenRouterAdapter
    return OpenRouterAdapter(
        MOCK_OPENROUTER_URL,
        api_key=MOCK_API_KEY,
        app_url="https://zchat.test",
        app_title="ZChat",
    )
