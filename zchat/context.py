"""
Context window usage estimates for a conversation.

Rough heuristic (about 4 characters per token plus per-message overhead);
good enough to warn before a chat outgrows the model's window.
"""

import math
from typing import Iterable, Union

from pydantic import BaseModel

from zchat.config import Turn

MESSAGE_OVERHEAD_TOKENS = 15


class ContextUsage(BaseModel):
    used_tokens: int
    max_tokens: int

    @property
    def percentage(self) -> int:
        return context_usage_percentage(self.used_tokens, self.max_tokens)

    def __str__(self) -> str:
        return format_context_usage(self.used_tokens, self.max_tokens)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def calculate_context_usage(turns: Iterable[Union[Turn, dict]]) -> int:
    """Estimated tokens for all turns, including role/formatting overhead."""
    total = 0
    for turn in turns:
        content = turn.content if isinstance(turn, Turn) else turn["content"]
        total += estimate_tokens(content) + MESSAGE_OVERHEAD_TOKENS
    return total


def _round_half_up(value: float, digits: int = 0) -> float:
    """Round halves up; round() would send them to the even neighbour."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def context_usage_percentage(used_tokens: int, max_tokens: int) -> int:
    if max_tokens <= 0:
        return 100
    return min(100, int(_round_half_up(used_tokens / max_tokens * 100)))


def format_context_usage(used_tokens: int, max_tokens: int) -> str:
    """
    Human-readable usage, scaled to the magnitude of used_tokens.

    >>> format_context_usage(500, 30000)
    '500/30000 (2%)'
    >>> format_context_usage(1500, 30000)
    '1.5k/30k (5%)'
    """
    percentage = context_usage_percentage(used_tokens, max_tokens)
    if used_tokens < 1000:
        return f"{used_tokens}/{max_tokens} ({percentage}%)"
    if used_tokens < 1_000_000:
        used_k = _round_half_up(used_tokens / 1000, 1)
        max_k = _round_half_up(max_tokens / 1000)
        return f"{used_k:.1f}k/{max_k:.0f}k ({percentage}%)"
    used_m = _round_half_up(used_tokens / 1_000_000, 1)
    max_m = _round_half_up(max_tokens / 1_000_000, 1)
    return f"{used_m:.1f}M/{max_m:.1f}M ({percentage}%)"
