"""
Chat backend adapters.

ChatProvider (base.py) is the contract; each module implements it for one backend.
"""

from .base import ChatProvider
from .lmstudio import LMStudioAdapter
from .openrouter import OpenRouterAdapter
from .schema import GenerationOptions

__all__ = ["ChatProvider", "GenerationOptions", "LMStudioAdapter", "OpenRouterAdapter"]
