"""Service layer for prompt enhancement operations."""

import logging
import time
from typing import Any, Dict, Optional

from ...auth import AuthIdentity
from ...enhancer import DEFAULT_FORMAT, PromptFormat
from ...storage import PromptRecord
from ...utils.exceptions import NotFoundError, PayloadTooLargeError, ValidationError
from ..deps import AppServices
from ..schemas import PromptCreateRequest, PromptUpdateRequest

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = [f.value for f in PromptFormat]
MAX_PAGE_SIZE = 100


def _parse_format(value: Optional[str]) -> PromptFormat:
    try:
        return PromptFormat(value)
    except ValueError:
        raise ValidationError(
            f"Invalid format. Allowed formats are: {', '.join(ALLOWED_FORMATS)}",
            code="invalid_format",
            details={"allowed": ALLOWED_FORMATS},
        ) from None


def _check_length(text: str, limit: int) -> None:
    if len(text) > limit:
        raise PayloadTooLargeError(
            f"The 'text' field must not exceed {limit} characters",
            details={"maxLength": limit, "length": len(text)},
        )


def _not_found(prompt_id: str) -> NotFoundError:
    return NotFoundError(f"No prompt found with ID: {prompt_id}", code="prompt_not_found")


async def _enhance(services: AppServices, text: str, fmt: PromptFormat) -> Dict[str, Any]:
    started = time.perf_counter()
    enhanced = await services.enhancer.enhance(text, fmt)
    duration_ms = int((time.perf_counter() - started) * 1000)
    logger.info(
        "Prompt enhanced in %dms (input %d chars, output %d chars)", duration_ms, len(text), len(enhanced)
    )
    return {
        "enhanced_text": enhanced,
        "metadata": {
            "enhancementDuration": duration_ms,
            "inputLength": len(text),
            "outputLength": len(enhanced),
        },
    }


async def create_prompt(
    services: AppServices, identity: AuthIdentity, request: Optional[PromptCreateRequest]
) -> Dict[str, Any]:
    if request is None or request.text is None or not request.text.strip():
        raise ValidationError("The 'text' field is required", code="missing_required_field",
                              details={"field": "text"})
    text = request.text
    _check_length(text, services.settings.prompt_length_limit)
    fmt = _parse_format(request.format) if request.format else DEFAULT_FORMAT

    result = await _enhance(services, text, fmt)
    record = services.prompt_store.add(
        PromptRecord(
            owner=identity.subject,
            original_text=text,
            enhanced_text=result["enhanced_text"],
            format=fmt.value,
            metadata={**result["metadata"], "clientId": identity.client_id},
        )
    )
    return record.to_response()


def list_prompts(services: AppServices, identity: AuthIdentity, limit: int, offset: int) -> Dict[str, Any]:
    limit = min(limit, MAX_PAGE_SIZE)
    records, total = services.prompt_store.list(identity.subject, limit=limit, offset=offset)
    return {
        "prompts": [r.to_response() for r in records],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


def get_prompt(services: AppServices, identity: AuthIdentity, prompt_id: str) -> Dict[str, Any]:
    record = services.prompt_store.get(prompt_id, identity.subject)
    if record is None:
        raise _not_found(prompt_id)
    return record.to_response()


async def update_prompt(
    services: AppServices,
    identity: AuthIdentity,
    prompt_id: str,
    request: Optional[PromptUpdateRequest],
) -> Dict[str, Any]:
    record = services.prompt_store.get(prompt_id, identity.subject)
    if record is None:
        raise _not_found(prompt_id)
    if request is None or (not request.text and not request.format):
        raise ValidationError("No update data provided", code="no_update_data")

    text = request.text or record.original_text
    _check_length(text, services.settings.prompt_length_limit)
    fmt = _parse_format(request.format) if request.format else PromptFormat(record.format)

    result = await _enhance(services, text, fmt)
    updated = record.model_copy(
        update={
            "original_text": text,
            "enhanced_text": result["enhanced_text"],
            "format": fmt.value,
            "metadata": {**record.metadata, **result["metadata"]},
        }
    )
    return services.prompt_store.replace(updated).to_response()


def delete_prompt(services: AppServices, identity: AuthIdentity, prompt_id: str) -> None:
    if not services.prompt_store.delete(prompt_id, identity.subject):
        raise _not_found(prompt_id)
    logger.info("Prompt %s deleted", prompt_id)
