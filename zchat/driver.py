"""
Conversation driver: picks the adapter for a conversation, keeps the turn
history, and persists the assistant reply once its stream completes.

Adapters and the turn store are injected; nothing here is a module-level
singleton.
"""

import logging
from collections import defaultdict
from typing import AsyncGenerator, Awaitable, Callable, Mapping, Optional, Protocol

from zchat.adapters.base import ChatProvider
from zchat.adapters.schema import GenerationOptions
from zchat.config import Conversation, Provider, Role, Turn, UserSettings
from zchat.context import ContextUsage, calculate_context_usage

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Awaitable[None]]


class ConversationConfigError(ValueError):
    """Conversation names a provider or model the driver can't serve."""
    pass


# ─────────────────────────────────────────────────────────────────────
# TURN STORE
# ─────────────────────────────────────────────────────────────────────

class TurnStore(Protocol):
    """Persistence boundary for conversation turns."""

    async def load_turns(self, conversation_id: str) -> list[Turn]:
        """Return the conversation's turns in insertion order."""
        ...

    async def append_turn(self, conversation_id: str, turn: Turn) -> None:
        ...


class InMemoryTurnStore:
    """Process-local TurnStore for the CLI and tests."""

    def __init__(self):
        self._turns: dict[str, list[Turn]] = defaultdict(list)

    async def load_turns(self, conversation_id: str) -> list[Turn]:
        return list(self._turns[conversation_id])

    async def append_turn(self, conversation_id: str, turn: Turn) -> None:
        self._turns[conversation_id].append(turn)


# ─────────────────────────────────────────────────────────────────────
# DRIVER
# ─────────────────────────────────────────────────────────────────────

class ConversationDriver:
    """
    Sends user turns to the conversation's provider and records the replies.

    Usage:
        driver = ConversationDriver(
            {Provider.LMSTUDIO: LMStudioAdapter(), Provider.OPENROUTER: OpenRouterAdapter()},
            InMemoryTurnStore(),
        )
        async for chunk in driver.stream_reply(conversation, "Hello"):
            print(chunk, end="")
    """

    def __init__(
        self,
        providers: Mapping[Provider, ChatProvider],
        store: TurnStore,
        settings: Optional[UserSettings] = None,
    ):
        self._providers: dict[Provider, ChatProvider] = {
            Provider(name): adapter for name, adapter in providers.items()
        }
        self._store = store
        self.settings = settings or UserSettings()

    def provider_for(self, conversation: Conversation) -> ChatProvider:
        """
        Return the adapter serving this conversation.

        Raises:
            ConversationConfigError: unknown/unregistered provider or empty model
        """
        try:
            provider = Provider(conversation.provider)
        except ValueError:
            raise ConversationConfigError(
                f"Unknown provider '{conversation.provider}' for conversation {conversation.id}"
            ) from None

        adapter = self._providers.get(provider)
        if adapter is None:
            raise ConversationConfigError(
                f"No adapter registered for provider '{provider.value}'. "
                f"Available: {sorted(p.value for p in self._providers)}"
            )
        if not conversation.model.strip():
            raise ConversationConfigError(
                f"Conversation {conversation.id} has no model selected"
            )
        return adapter

    async def is_ready(self, conversation: Conversation) -> bool:
        """Ask the conversation's adapter whether it can take a request."""
        return await self.provider_for(conversation).is_ready()

    def _build_messages(self, conversation: Conversation, turns: list[Turn]) -> list[Turn]:
        if conversation.system_prompt:
            return [Turn(role=Role.SYSTEM, content=conversation.system_prompt), *turns]
        return turns

    async def _stream(
        self,
        conversation: Conversation,
        content: str,
        options: Optional[GenerationOptions],
        parts: list[str],
    ) -> AsyncGenerator[str, None]:
        adapter = self.provider_for(conversation)

        history = await self._store.load_turns(conversation.id)
        user_turn = Turn(role=Role.USER, content=content)
        await self._store.append_turn(conversation.id, user_turn)

        messages = self._build_messages(conversation, [*history, user_turn])
        logger.debug(
            "Sending %d turns to %s/%s", len(messages), conversation.provider, conversation.model
        )
        async for chunk in adapter.stream_completion(messages, conversation.model, options):
            parts.append(chunk)
            yield chunk

    async def _finish(self, conversation: Conversation, parts: list[str]) -> Optional[Turn]:
        reply = "".join(parts)
        if not reply:
            logger.warning("Empty reply from %s/%s", conversation.provider, conversation.model)
            return None
        turn = Turn(role=Role.ASSISTANT, content=reply)
        await self._store.append_turn(conversation.id, turn)
        return turn

    async def stream_reply(
        self,
        conversation: Conversation,
        content: str,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Persist the user turn, stream the reply, then persist it.

        The assistant turn is only written once the stream has been fully
        consumed. ProviderRequestError propagates to the caller.
        """
        parts: list[str] = []
        async for chunk in self._stream(conversation, content, options, parts):
            yield chunk
        await self._finish(conversation, parts)

    async def send(
        self,
        conversation: Conversation,
        content: str,
        options: Optional[GenerationOptions] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> Optional[Turn]:
        """
        Send a user message and return the persisted assistant turn.

        Returns None if the provider produced no text at all.
        """
        parts: list[str] = []
        async for chunk in self._stream(conversation, content, options, parts):
            if on_chunk:
                await on_chunk(chunk)
        return await self._finish(conversation, parts)

    async def context_usage(self, conversation: Conversation) -> ContextUsage:
        turns = await self._store.load_turns(conversation.id)
        return ContextUsage(
            used_tokens=calculate_context_usage(turns),
            max_tokens=self.settings.max_context_length,
        )
