"""Prompt enhancement API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ...auth import AuthIdentity
from ..deps import AppServices, get_identity, get_services
from ..schemas import PromptCreateRequest, PromptListResponse, PromptResponse, PromptUpdateRequest
from ..services import prompts_service

router = APIRouter(prefix="/v1/prompts", tags=["prompts"])


@router.post("", response_model=PromptResponse, response_model_exclude_none=True)
async def create_prompt(
    request: Optional[PromptCreateRequest] = None,
    services: AppServices = Depends(get_services),
    identity: AuthIdentity = Depends(get_identity),
):
    """Enhance a prompt and store the result."""
    return await prompts_service.create_prompt(services, identity, request)


@router.get("", response_model=PromptListResponse, response_model_exclude_none=True)
async def list_prompts(
    limit: int = Query(10, ge=1),
    offset: int = Query(0, ge=0),
    services: AppServices = Depends(get_services),
    identity: AuthIdentity = Depends(get_identity),
):
    """List the caller's prompts."""
    return prompts_service.list_prompts(services, identity, limit, offset)


@router.get("/{prompt_id}", response_model=PromptResponse, response_model_exclude_none=True)
async def get_prompt(
    prompt_id: str,
    services: AppServices = Depends(get_services),
    identity: AuthIdentity = Depends(get_identity),
):
    return prompts_service.get_prompt(services, identity, prompt_id)


@router.put("/{prompt_id}", response_model=PromptResponse, response_model_exclude_none=True)
async def update_prompt(
    prompt_id: str,
    request: Optional[PromptUpdateRequest] = None,
    services: AppServices = Depends(get_services),
    identity: AuthIdentity = Depends(get_identity),
):
    """Replace text and/or format and enhance again."""
    return await prompts_service.update_prompt(services, identity, prompt_id, request)


@router.delete("/{prompt_id}", status_code=204)
async def delete_prompt(
    prompt_id: str,
    services: AppServices = Depends(get_services),
    identity: AuthIdentity = Depends(get_identity),
):
    prompts_service.delete_prompt(services, identity, prompt_id)
    return Response(status_code=204)
