from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional


class LLMProviderError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class LLMResponseShapeError(LLMProviderError):
    """The provider answered successfully but without usable content."""


class LLMProvider(ABC):
    @abstractmethod
    async def chat(self, system_prompt: str, user_prompt: str, max_tokens: int = 1200) -> str:
        raise NotImplementedError

    @abstractmethod
    async def respond(self, text: str) -> tuple[str, int]:
        """Plain-input completion used when the chat endpoint is unavailable.

        Returns the response text and the HTTP status it came with.
        """
        raise NotImplementedError


class BaseLLMProvider(LLMProvider):
    """Shared response parsing; subclasses only talk to their API."""

    def __init__(self, logger_name: str = "recap.llm") -> None:
        self._logger = logging.getLogger(logger_name)

    def _content_from_completion(self, data: dict) -> str:
        choices = data.get("choices") or []
        if choices and isinstance(choices[0], dict):
            choice = choices[0]
            message = choice.get("message") or {}
            content = message.get("content") or choice.get("text")
            if content:
                return content if isinstance(content, str) else str(content)
        output = data.get("output")
        if output:
            return output if isinstance(output, str) else str(output)
        self._logger.warning("Completion returned unexpected shape: keys=%s", sorted(data.keys()))
        raise LLMResponseShapeError("Completion response missing content", status=200)
