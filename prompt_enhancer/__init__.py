"""Prompt Enhancer: REST API that rewrites short prompts into detailed LLM instructions."""

__version__ = "1.0.0"

# Server-level objects are imported lazily to avoid circular imports.
__all__ = ["include_routers"]

from fastapi import FastAPI


def include_routers(app: FastAPI) -> None:
    """Include all APIRouter modules into given FastAPI app."""
    from .api.routers import auth_router, prompts_router

    for router in [auth_router, prompts_router]:
        app.include_router(router)
