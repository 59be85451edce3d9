"""Provider adapters implementing the shared streaming-send contract."""

from .base import ProviderAdapter, TurnInput
from .gemini import GeminiSessionAdapter
from .openai_compat import OpenAICompatibleAdapter

__all__ = [
    "GeminiSessionAdapter",
    "OpenAICompatibleAdapter",
    "ProviderAdapter",
    "TurnInput",
]
