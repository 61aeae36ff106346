import logging
import os
from dataclasses import dataclass
from typing import Optional, Sequence

from recap.services.config import SummarizationConfig
from recap.services.llm import (
    LLMProvider,
    LLMProviderError,
    LLMResponseShapeError,
    OpenAIProvider,
)

FALLBACK_LINES = 8
FALLBACK_CHARS = 2000


@dataclass(frozen=True)
class SummaryResult:
    summary: Optional[str]
    provider_status: Optional[int] = None
    fallback: bool = False


def extractive_summary(raw_text: str, reason: str) -> str:
    """First few transcript lines, used when the model gives us nothing usable."""
    lines = [line.strip() for line in (raw_text or "").split("\n") if line.strip()]
    return f"[Fallback summary: {reason}]\n" + " ".join(lines[:FALLBACK_LINES])[:FALLBACK_CHARS]


class SummarizationService:
    """Structured meeting summaries from an OpenAI-compatible chat model.

    Never raises on provider trouble: a failed chat completion is retried
    against the plain ``/v1/responses`` endpoint, and anything beyond that
    degrades to an extractive summary of the raw transcript.
    """

    def __init__(
        self,
        config: SummarizationConfig,
        provider: Optional[LLMProvider] = None,
        prompts_dir: Optional[str] = None,
    ) -> None:
        self._config = config
        self._provider = provider
        self._prompts_dir = prompts_dir or os.path.join(os.path.dirname(__file__), "..", "prompts")
        self._logger = logging.getLogger("recap.summarization")

    @property
    def enabled(self) -> bool:
        return self._provider is not None or self._config.enabled

    def _get_provider(self) -> LLMProvider:
        if self._provider is not None:
            return self._provider
        if not self._config.enabled:
            raise LLMProviderError("Summarization provider not configured")
        return OpenAIProvider(
            api_key=self._config.api_key,
            model=self._config.model,
            base_url=self._config.base_url,
            timeout=self._config.timeout_seconds,
        )

    def _read_prompt(self, name: str) -> str:
        path = os.path.join(self._prompts_dir, name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read().strip()
        except OSError as exc:
            raise LLMProviderError(f"Missing prompt file: {path}") from exc

    def build_prompts(self, transcript: str, participants: Sequence[str]) -> tuple[str, str]:
        system_prompt = self._read_prompt("summary_system.txt")
        template = self._read_prompt("summary_user.txt")
        participants_text = ", ".join(participants) if participants else "None identified"
        user_prompt = template.replace("{{participants}}", participants_text).replace(
            "{{transcript}}", transcript
        )
        return system_prompt, user_prompt

    async def summarize(
        self, transcript: str, participants: Sequence[str] = (), raw_text: str = ""
    ) -> SummaryResult:
        """Summarize the normalized transcript; ``raw_text`` feeds the fallbacks."""
        raw_text = raw_text or transcript
        if not self.enabled or not transcript.strip():
            return SummaryResult(summary=None)

        try:
            provider = self._get_provider()
            system_prompt, user_prompt = self.build_prompts(transcript, participants)
        except LLMProviderError as exc:
            self._logger.warning("Summarization setup failed: %s", exc)
            return SummaryResult(extractive_summary(raw_text, str(exc)), fallback=True)

        self._logger.info(
            "Summarization using provider=%s chars=%d participants=%d",
            provider.__class__.__name__,
            len(transcript),
            len(participants),
        )
        try:
            content = await provider.chat(system_prompt, user_prompt, max_tokens=self._config.max_tokens)
            return SummaryResult(summary=content, provider_status=200)
        except LLMResponseShapeError as exc:
            self._logger.warning("Chat completion returned unexpected shape: %s", exc)
            return SummaryResult(
                extractive_summary(raw_text, "unexpected response shape"), fallback=True
            )
        except LLMProviderError as exc:
            self._logger.warning("Chat completion failed, trying responses endpoint: %s", exc)
        except Exception as exc:
            self._logger.exception("Chat completion error, trying responses endpoint: %s", exc)

        try:
            content, status = await provider.respond(raw_text)
            return SummaryResult(summary=content, provider_status=status)
        except LLMProviderError as exc:
            self._logger.warning("Responses endpoint failed: %s", exc)
            reason = f"provider error (status {exc.status})" if exc.status else "provider exception"
            return SummaryResult(
                extractive_summary(raw_text, reason), provider_status=exc.status, fallback=True
            )
        except Exception as exc:
            self._logger.exception("Summarization failed: %s", exc)
            return SummaryResult(extractive_summary(raw_text, "provider exception"), fallback=True)
