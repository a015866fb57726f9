"""Prompt enhancer interface."""

from enum import Enum
from typing import Protocol, runtime_checkable


class PromptFormat(str, Enum):
    """Output shapes the enhanced prompt can ask for."""

    PARAGRAPH = "paragraph"
    BULLET = "bullet"
    STRUCTURED = "structured"
    CONVERSATIONAL = "conversational"


DEFAULT_FORMAT = PromptFormat.STRUCTURED


@runtime_checkable
class PromptEnhancer(Protocol):
    """Turns a short prompt into a detailed instruction."""

    async def enhance(self, text: str, format: PromptFormat = DEFAULT_FORMAT) -> str:
        ...

    async def close(self) -> None:
        ...
