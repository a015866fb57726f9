import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from prompt_enhancer.config import EnhancerProvider
from prompt_enhancer.enhancer import (
    LLMEnhancer,
    PromptEnhancer,
    PromptFormat,
    TemplateEnhancer,
    analyze_prompt,
    create_enhancer,
)
from prompt_enhancer.enhancer.llm import strip_markdown
from prompt_enhancer.utils.exceptions import EnhancementTimeoutError, UpstreamServiceError
from prompt_enhancer.utils.llm_client import LLMBackend, LLMClient, LLMProviderError

from conftest import make_settings


def mock_llm_client(**generate_kwargs):
    client = MagicMock()
    client.generate = AsyncMock(**generate_kwargs)
    client.close = AsyncMock()
    return client


def test_analyze_detects_domain_and_topic():
    context = analyze_prompt("Write a blog post about marketing strategy for startups")

    assert context.domain == "marketing"
    assert context.role == "marketing specialist"
    assert context.topic == "marketing strategy for startups"
    assert context.intent == "inform"


def test_analyze_short_topic_keeps_original():
    context = analyze_prompt("Write about APIs")

    assert context.topic == "Write about APIs"
    assert context.domain is None
    assert context.role == "content strategist and professional writer"


def test_analyze_intent_and_length():
    context = analyze_prompt("Explain how to build a REST api in 300 words")

    assert context.intent == "instruct"
    assert context.domain == "technology"
    assert context.length_limit == 300
    assert context.length_unit == "words"


@pytest.mark.asyncio
async def test_template_enhancement():
    enhancer = TemplateEnhancer()
    enhanced = await enhancer.enhance("Write about APIs", PromptFormat.CONVERSATIONAL)

    assert enhanced.startswith("You are an experienced")
    assert '"Write about APIs"' in enhanced
    assert "conversational voice" in enhanced
    assert isinstance(enhancer, PromptEnhancer)


@pytest.mark.asyncio
async def test_template_formats_differ():
    enhancer = TemplateEnhancer()
    outputs = {await enhancer.enhance("Describe healthy habits", fmt) for fmt in PromptFormat}
    assert len(outputs) == len(PromptFormat)


def test_strip_markdown():
    assert strip_markdown("**Bold** and __under__ with `code`") == "Bold and under with code"
    assert strip_markdown("```text\nfenced body\n```") == "fenced body"


@pytest.mark.asyncio
async def test_llm_enhancer_returns_cleaned_content():
    client = mock_llm_client(return_value="  **You are** a seasoned analyst.  ")
    enhancer = LLMEnhancer(client, timeout_seconds=1)

    result = await enhancer.enhance("Analyze stock trends", PromptFormat.BULLET)

    assert result == "You are a seasoned analyst."
    args, kwargs = client.generate.await_args
    assert "Analyze stock trends" in args[0]
    assert "bullet points" in kwargs["system_prompt"]
    assert kwargs["max_tokens"] == 800


@pytest.mark.asyncio
async def test_llm_enhancer_timeout():
    async def never_answers(*args, **kwargs):
        await asyncio.sleep(5)

    client = mock_llm_client()
    client.generate = never_answers
    enhancer = LLMEnhancer(client, timeout_seconds=0.01)

    with pytest.raises(EnhancementTimeoutError) as exc_info:
        await enhancer.enhance("Write about APIs")
    assert exc_info.value.status_code == 503
    assert exc_info.value.headers == {"Retry-After": "30"}


@pytest.mark.asyncio
async def test_llm_enhancer_provider_error():
    client = mock_llm_client(side_effect=LLMProviderError("openai", 429, "slow down"))

    with pytest.raises(UpstreamServiceError) as exc_info:
        await LLMEnhancer(client).enhance("Write about APIs")
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_llm_enhancer_empty_content():
    client = mock_llm_client(return_value="   ")

    with pytest.raises(UpstreamServiceError):
        await LLMEnhancer(client).enhance("Write about APIs")


@pytest.mark.asyncio
async def test_llm_enhancer_close():
    client = mock_llm_client()
    await LLMEnhancer(client).close()
    client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_llm_client_requires_api_key():
    client = LLMClient(LLMBackend.OPENAI, None, "gpt-3.5-turbo")
    with pytest.raises(ValueError):
        await client.generate("hello")
    await client.close()


def test_create_enhancer_template():
    assert isinstance(create_enhancer(make_settings(ai_provider=EnhancerProvider.TEMPLATE)), TemplateEnhancer)


def test_create_enhancer_without_key_falls_back(caplog):
    enhancer = create_enhancer(make_settings(ai_provider=EnhancerProvider.OPENAI, openai_api_key=None))

    assert isinstance(enhancer, TemplateEnhancer)
    assert "No API key for openai" in caplog.text


def test_create_enhancer_mistral():
    settings = make_settings(
        ai_provider=EnhancerProvider.MISTRAL,
        mistral_api_key="mk-test",
        enhancement_timeout_seconds=12,
    )
    enhancer = create_enhancer(settings)

    assert isinstance(enhancer, LLMEnhancer)
    assert enhancer.timeout_seconds == 12
    assert enhancer.llm_client.backend == LLMBackend.MISTRAL
    assert enhancer.llm_client.model == "mistral-medium"
    assert enhancer.llm_client.endpoint == "https://api.mistral.ai/v1/chat/completions"


@pytest.mark.asyncio
async def test_llm_client_performance_stats():
    client = LLMClient(LLMBackend.MISTRAL, "mk-test", "mistral-small")
    client._chat_completion = AsyncMock(side_effect=[LLMProviderError("mistral", 500, "boom"), "ok"])

    with pytest.raises(LLMProviderError):
        await client.generate("hello")
    assert await client.generate("hello") == "ok"

    stats = client.get_performance_stats()
    assert stats["backend"] == "mistral"
    assert stats["total_requests"] == 2
    assert stats["total_errors"] == 1
    assert stats["error_rate_percent"] == 50.0
    await client.close()
