"""Collection of APIRouter modules for the Prompt Enhancer API."""

from .auth import router as auth_router
from .prompts import router as prompts_router

__all__ = [
    "auth_router",
    "prompts_router",
]
