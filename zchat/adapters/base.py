"""
ChatProvider Protocol - defines the contract for chat backends.

Interface only. LMStudioAdapter and OpenRouterAdapter implement it.
"""

from typing import AsyncGenerator, Optional, Protocol, Sequence, Union, runtime_checkable

from zchat.adapters.schema import GenerationOptions
from zchat.config import ModelDescriptor, Turn


@runtime_checkable
class ChatProvider(Protocol):
    """
    Contract for chat backends.

    Implementations must provide:
    - Model discovery (list_models)
    - Streaming completion (stream_completion)
    - One-shot completion (get_single_response)
    - Readiness check (is_ready)
    """

    async def is_ready(self) -> bool:
        """
        Whether the backend can take a request right now.

        LMStudioAdapter probes the server; OpenRouterAdapter resolves its
        credential. Never raises.
        """
        ...

    async def list_models(self) -> list[ModelDescriptor]:
        """
        Return the provider's model catalog.

        Never raises: failures are logged and yield an empty list.
        """
        ...

    def stream_completion(
        self,
        turns: Sequence[Union[Turn, dict]],
        model_id: str,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Stream completion text for the conversation so far.

        Args:
            turns: Ordered conversation turns (Turn models or role/content dicts)
            model_id: Model identifier
            options: Generation settings, defaults when omitted

        Yields:
            Text fragments in arrival order. Network failures end the stream
            with one apology fragment instead of raising.

        Raises:
            ProviderRequestError: on a non-success status, before any fragment
        """
        ...

    async def get_single_response(
        self,
        turns: Sequence[Union[Turn, dict]],
        model_id: str,
    ) -> str:
        """Return the full reply, or NO_RESPONSE if the provider produced nothing."""
        ...
