import httpx
import pytest

from recap.services.config import SummarizationConfig
from recap.services.llm import LLMProviderError, LLMResponseShapeError, OpenAIProvider
from recap.services.summarization import SummarizationService, extractive_summary

RAW = "\n".join(f"[2024-05-01T09:30:{i:02d}.000Z] u1: line {i}" for i in range(12))
NORMALIZED = "Ana: hola\n[Unknown]: buenas tardes"


def test_extractive_summary_takes_first_lines():
    summary = extractive_summary(RAW, "provider exception")
    header, body = summary.split("\n", 1)
    assert header == "[Fallback summary: provider exception]"
    assert "line 7" in body
    assert "line 8" not in body


async def test_disabled_service_produces_no_summary():
    service = SummarizationService(SummarizationConfig())
    result = await service.summarize(NORMALIZED, ("Ana",), raw_text=RAW)
    assert result.summary is None
    assert result.provider_status is None


async def test_empty_transcript_produces_no_summary(make_llm):
    llm = make_llm()
    result = await SummarizationService(SummarizationConfig(), provider=llm).summarize("  ")
    assert result.summary is None
    assert llm.chat_calls == []


async def test_chat_completion_success(make_llm):
    llm = make_llm(chat_result="## Discussion summary\nWe met.")
    service = SummarizationService(SummarizationConfig(max_tokens=900), provider=llm)

    result = await service.summarize(NORMALIZED, ("Ana",), raw_text=RAW)

    assert result.summary == "## Discussion summary\nWe met."
    assert result.provider_status == 200
    assert result.fallback is False
    system_prompt, user_prompt, max_tokens = llm.chat_calls[0]
    assert max_tokens == 900
    assert "Ana" in user_prompt
    assert NORMALIZED in user_prompt
    assert system_prompt


def test_prompts_without_participants():
    service = SummarizationService(SummarizationConfig())
    _, user_prompt = service.build_prompts("Ana: hola", ())
    assert "None identified" in user_prompt
    assert "{{" not in user_prompt


async def test_chat_failure_falls_through_to_responses(make_llm):
    llm = make_llm(chat_error=LLMProviderError("Chat completion error: 503", status=503))
    result = await SummarizationService(SummarizationConfig(), provider=llm).summarize(
        NORMALIZED, raw_text=RAW
    )

    assert result.summary == "responses output"
    assert result.provider_status == 200
    assert llm.respond_calls == [RAW]


async def test_both_endpoints_failing_yields_fallback(make_llm):
    llm = make_llm(
        chat_error=LLMProviderError("Chat completion error: 503", status=503),
        respond_error=LLMProviderError("Responses endpoint error: 500", status=500),
    )
    result = await SummarizationService(SummarizationConfig(), provider=llm).summarize(
        NORMALIZED, raw_text=RAW
    )

    assert result.fallback is True
    assert result.provider_status == 500
    assert result.summary.startswith("[Fallback summary: provider error (status 500)]")
    assert "line 0" in result.summary


async def test_unexpected_shape_goes_straight_to_fallback(make_llm):
    llm = make_llm(chat_error=LLMResponseShapeError("Completion response missing content", status=200))
    result = await SummarizationService(SummarizationConfig(), provider=llm).summarize(
        NORMALIZED, raw_text=RAW
    )

    assert result.fallback is True
    assert result.summary.startswith("[Fallback summary: unexpected response shape]")
    assert llm.respond_calls == []


async def test_unexpected_exception_is_contained(make_llm):
    llm = make_llm(chat_error=KeyError("choices"), respond_error=RuntimeError("socket closed"))
    result = await SummarizationService(SummarizationConfig(), provider=llm).summarize(
        NORMALIZED, raw_text=RAW
    )
    assert result.summary.startswith("[Fallback summary: provider exception]")


async def test_openai_provider_chat_and_responses(scripted):
    transport = scripted(
        httpx.Response(500, text="overloaded"),
        httpx.Response(200, json={"output": "plain summary"}),
    )
    provider = OpenAIProvider("sk-test", "deepseek-chat", transport=transport.transport)
    service = SummarizationService(
        SummarizationConfig(api_key="sk-test", base_url="https://api.deepseek.com"), provider=provider
    )

    result = await service.summarize(NORMALIZED, ("Ana",), raw_text=RAW)

    assert result.summary == "plain summary"
    assert result.provider_status == 200
    assert [r.url.path for r in transport.requests] == ["/v1/chat/completions", "/v1/responses"]
    assert transport.requests[0].headers["Authorization"] == "Bearer sk-test"


async def test_openai_provider_reads_choice_content(scripted):
    transport = scripted(
        httpx.Response(200, json={"choices": [{"message": {"content": "  resumen  "}}]})
    )
    provider = OpenAIProvider("sk-test", "deepseek-chat", transport=transport.transport)
    assert await provider.chat("sys", "user") == "resumen"


async def test_openai_provider_rejects_empty_completion(scripted):
    transport = scripted(httpx.Response(200, json={"choices": []}))
    provider = OpenAIProvider("sk-test", "deepseek-chat", transport=transport.transport)
    with pytest.raises(LLMResponseShapeError):
        await provider.chat("sys", "user")
