from __future__ import annotations

import json
from typing import Optional

import httpx

from recap.services.llm.base import BaseLLMProvider, LLMProviderError, LLMResponseShapeError


class OpenAIProvider(BaseLLMProvider):
    """LLM provider for OpenAI and OpenAI-compatible APIs (DeepSeek by default)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.deepseek.com",
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(logger_name="recap.llm.openai")
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def model(self) -> str:
        return self._model

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, body: dict) -> httpx.Response:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                return await client.post(f"{self._base_url}{path}", headers=self._headers(), json=body)
        except httpx.HTTPError as exc:
            raise LLMProviderError(f"Failed to reach {self._base_url}: {exc}") from exc

    async def chat(self, system_prompt: str, user_prompt: str, max_tokens: int = 1200) -> str:
        request_body = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens,
        }
        response = await self._post("/v1/chat/completions", request_body)
        if response.status_code != 200:
            raise LLMProviderError(
                f"Chat completion error: {response.status_code}", status=response.status_code
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise LLMResponseShapeError("Chat completion returned non-JSON", status=200) from exc
        return self._content_from_completion(data).strip()

    async def respond(self, text: str) -> tuple[str, int]:
        response = await self._post("/v1/responses", {"model": self._model, "input": text})
        body = response.text
        if not response.is_success:
            self._logger.warning(
                "Responses endpoint returned %s: %s", response.status_code, body[:2000]
            )
            raise LLMProviderError(
                f"Responses endpoint error: {response.status_code}", status=response.status_code
            )
        try:
            parsed = json.loads(body)
        except ValueError:
            return body, response.status_code
        if isinstance(parsed, dict):
            content = parsed.get("output") or parsed.get("result")
            if content:
                text_out = content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)
                return text_out, response.status_code
        if isinstance(parsed, str):
            return parsed, response.status_code
        return json.dumps(parsed, ensure_ascii=False), response.status_code
