from pydantic import BaseModel, Field

from zchat.config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, DEFAULT_TIMEOUT_SECONDS


class GenerationOptions(BaseModel):
    """
    Per-request generation settings shared by every adapter.

    stream=False asks the adapter for a single non-streaming request; the
    adapter still yields through the same async generator, just once.
    timeout_seconds bounds every connect/read wait of the request.
    """
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)
    stream: bool = True
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
