"""Prompt enhancement strategies."""

import logging

from ..config import EnhancerProvider, Settings
from ..utils.llm_client import LLMBackend, LLMClient
from .base import DEFAULT_FORMAT, PromptEnhancer, PromptFormat
from .llm import LLMEnhancer
from .templates import TemplateEnhancer, analyze_prompt

logger = logging.getLogger(__name__)


def create_enhancer(settings: Settings) -> PromptEnhancer:
    """Pick the enhancement strategy once, from configuration."""
    template = TemplateEnhancer()
    if settings.ai_provider == EnhancerProvider.OPENAI:
        api_key, model, backend = settings.openai_api_key, settings.openai_model, LLMBackend.OPENAI
    elif settings.ai_provider == EnhancerProvider.MISTRAL:
        api_key, model, backend = settings.mistral_api_key, settings.mistral_model, LLMBackend.MISTRAL
    else:
        logger.info("Using template prompt enhancement")
        return template

    if not api_key:
        logger.warning("No API key for %s; using template prompt enhancement", backend.value)
        return template

    logger.info("Using %s prompt enhancement with model %s", backend.value, model)
    client = LLMClient(backend, api_key, model, request_timeout_seconds=settings.enhancement_timeout_seconds)
    return LLMEnhancer(client, timeout_seconds=settings.enhancement_timeout_seconds, fallback=template)


__all__ = [
    "DEFAULT_FORMAT",
    "LLMEnhancer",
    "PromptEnhancer",
    "PromptFormat",
    "TemplateEnhancer",
    "analyze_prompt",
    "create_enhancer",
]
