"""Enhancement through an LLM provider."""

import asyncio
import logging
import re
from typing import Optional

import aiohttp

from ..utils.exceptions import EnhancementTimeoutError, UpstreamServiceError
from ..utils.llm_client import LLMClient, LLMProviderError
from .base import DEFAULT_FORMAT, PromptFormat
from .templates import TemplateEnhancer

logger = logging.getLogger(__name__)

_MARKDOWN_PATTERNS = [
    (re.compile(r"```[^\n]*\n([\s\S]*?)```"), r"\1"),
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"__(.*?)__"), r"\1"),
    (re.compile(r"`([^`]*)`"), r"\1"),
]


def strip_markdown(text: str) -> str:
    """Remove emphasis and code markup that providers like to add."""
    for pattern, replacement in _MARKDOWN_PATTERNS:
        text = pattern.sub(replacement, text)
    return text.strip()


class LLMEnhancer:
    """Asks the provider to rewrite the prompt, bounded by ``timeout_seconds``."""

    def __init__(
        self,
        llm_client: LLMClient,
        timeout_seconds: float = 45.0,
        fallback: Optional[TemplateEnhancer] = None,
    ):
        self.llm_client = llm_client
        self.timeout_seconds = timeout_seconds
        self.fallback = fallback if fallback is not None else TemplateEnhancer()

    async def enhance(self, text: str, format: PromptFormat = DEFAULT_FORMAT) -> str:
        system_prompt = self.fallback.system_prompt(text, format)
        user_prompt = f'Please enhance this basic prompt into a comprehensive, sophisticated instruction: "{text}"'

        try:
            content = await asyncio.wait_for(
                self.llm_client.generate(user_prompt, system_prompt=system_prompt, max_tokens=800),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Prompt enhancement timed out after %ss", self.timeout_seconds)
            raise EnhancementTimeoutError(
                details="Try with a shorter or less complex prompt",
                headers={"Retry-After": "30"},
            ) from e
        except (LLMProviderError, aiohttp.ClientError, ValueError, KeyError, IndexError) as e:
            logger.error("Prompt enhancement failed: %s", e)
            raise UpstreamServiceError() from e

        enhanced = strip_markdown(content or "")
        if not enhanced:
            logger.error("Provider returned an empty enhancement")
            raise UpstreamServiceError()
        return enhanced

    async def close(self) -> None:
        await self.llm_client.close()
