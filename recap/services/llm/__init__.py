from recap.services.llm.base import (
    BaseLLMProvider,
    LLMProvider,
    LLMProviderError,
    LLMResponseShapeError,
)
from recap.services.llm.openai_provider import OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "LLMProvider",
    "LLMProviderError",
    "LLMResponseShapeError",
    "OpenAIProvider",
]
