"""Request and response models for the public API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: Optional[str] = Field(None, alias="clientId", max_length=128)
    client_secret: Optional[str] = Field(None, alias="clientSecret")


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str


class ValidateTokenRequest(BaseModel):
    token: Optional[str] = None


class ValidateTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    client_id: Optional[str] = Field(None, alias="clientId")
    scope: Optional[str] = None
    expires: str


class PromptCreateRequest(BaseModel):
    """Fields are optional so missing input gets a specific error code."""

    text: Optional[str] = None
    format: Optional[str] = None


class PromptUpdateRequest(BaseModel):
    text: Optional[str] = None
    format: Optional[str] = None


class PromptResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    original_text: str = Field(..., alias="originalText")
    enhanced_text: str = Field(..., alias="enhancedText")
    format: str
    created_at: str = Field(..., alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PromptListResponse(BaseModel):
    prompts: List[PromptResponse]
    total: int
    limit: int
    offset: int
