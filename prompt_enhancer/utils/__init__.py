"""Utility modules for the Prompt Enhancer API."""

from .exceptions import APIError, ConfigurationError, PromptEnhancerError
from .llm_client import LLMClient
from .logging_config import setup_logging

__all__ = [
    "APIError",
    "ConfigurationError",
    "PromptEnhancerError",
    "LLMClient",
    "setup_logging",
]
