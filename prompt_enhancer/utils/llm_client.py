"""LLM client for prompt enhancement."""

import asyncio
import logging
from enum import Enum
from typing import Optional, Union

import aiohttp
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


class LLMBackend(str, Enum):
    """Supported LLM backends."""

    OPENAI = "openai"
    MISTRAL = "mistral"


ENDPOINTS = {
    LLMBackend.OPENAI: "https://api.openai.com/v1/chat/completions",
    LLMBackend.MISTRAL: "https://api.mistral.ai/v1/chat/completions",
}


class LLMProviderError(Exception):
    """Raised when the provider answers with a non-success status."""

    def __init__(self, backend: str, status: int, body: str):
        self.backend = backend
        self.status = status
        self.body = body
        super().__init__(f"{backend} error {status}")


class LLMClient:
    """Client for OpenAI-compatible chat completion providers."""

    def __init__(
        self,
        backend: Union[str, LLMBackend],
        api_key: Optional[str],
        model: str,
        request_timeout_seconds: float = 45.0,
        connection_timeout: float = 10.0,
        max_connections: int = 100,
    ):
        self.backend = LLMBackend(backend)
        self.api_key = api_key
        self.model = model
        self.endpoint = ENDPOINTS[self.backend]

        self.request_timeout_seconds = request_timeout_seconds
        self.connection_timeout = connection_timeout
        self.max_connections = max_connections

        self._session: Optional[aiohttp.ClientSession] = None
        self._session_lock = asyncio.Lock()

        # Performance monitoring
        self._request_count = 0
        self._error_count = 0
        self._total_response_time = 0.0

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session with connection pooling."""
        async with self._session_lock:
            if self._session is None or self._session.closed:
                connector = aiohttp.TCPConnector(
                    limit=self.max_connections,
                    ttl_dns_cache=300,
                    keepalive_timeout=30,
                )
                timeout = aiohttp.ClientTimeout(
                    total=self.request_timeout_seconds,
                    connect=self.connection_timeout,
                    sock_connect=self.connection_timeout,
                )
                self._session = aiohttp.ClientSession(
                    connector=connector,
                    timeout=timeout,
                    headers={
                        "User-Agent": "prompt-enhancer/1.0.0 (LLM Client)",
                        "Accept": "application/json",
                    },
                )
                logger.debug("Created new HTTP session with connection pooling")

            return self._session

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1500,
    ) -> str:
        """Generate a completion.

        Args:
            prompt: The user prompt
            system_prompt: System prompt to prepend
            model: Model to use (overrides default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            Generated text response
        """
        if not self.api_key:
            raise ValueError(f"{self.backend.value} API key not configured")

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        success = False
        try:
            content = await self._chat_completion(
                prompt, system_prompt, model or self.model, temperature, max_tokens
            )
            success = True
            return content
        finally:
            self._track_request_performance(loop.time() - start_time, success)

    @retry(
        retry=retry_if_exception_type(aiohttp.ClientConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        reraise=True,
    )
    async def _chat_completion(
        self,
        prompt: str,
        system_prompt: Optional[str],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        session = await self._get_session()

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        async with session.post(self.endpoint, headers=headers, json=payload) as response:
            if response.status != 200:
                body = await response.text()
                logger.error("%s generation failed with status %s", self.backend.value, response.status)
                raise LLMProviderError(self.backend.value, response.status, body)
            data = await response.json()
            return data["choices"][0]["message"]["content"]

    def get_performance_stats(self) -> dict:
        """Get performance statistics for the LLM client."""
        if self._request_count == 0:
            avg_response_time = 0.0
        else:
            avg_response_time = self._total_response_time / self._request_count

        error_rate = (self._error_count / self._request_count * 100) if self._request_count > 0 else 0.0

        return {
            "backend": self.backend.value,
            "total_requests": self._request_count,
            "total_errors": self._error_count,
            "error_rate_percent": round(error_rate, 2),
            "average_response_time_seconds": round(avg_response_time, 3),
            "session_open": self._session is not None and not self._session.closed,
        }

    def _track_request_performance(self, response_time: float, success: bool):
        self._request_count += 1
        self._total_response_time += response_time
        if not success:
            self._error_count += 1

        if response_time > 30.0:
            logger.warning(f"Slow LLM request: {response_time:.2f}s")

    async def close(self):
        """Close the client and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("Closed HTTP session")
