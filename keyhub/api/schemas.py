"""
API request/response schemas using Pydantic models.
"""
from datetime import datetime
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field

from keyhub.models.settings import RotationStrategy


# ============================================================================
# Enums
# ============================================================================

class MessageRole(str, Enum):
    """Chat message role."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class FinishReason(str, Enum):
    """Completion finish reason."""
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    TOOL_CALLS = "tool_calls"


# ============================================================================
# Chat Completion Schemas (OpenAI compatible)
# ============================================================================

class ChatMessage(BaseModel):
    """Chat message model."""
    role: MessageRole
    content: str


class ChatCompletionRequest(BaseModel):
    """Canonical chat completion request (OpenAI compatible subset)."""
    model: Optional[str] = None
    messages: List[ChatMessage] = Field(min_length=1)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)


class ChatCompletionChoice(BaseModel):
    """Chat completion choice."""
    index: int = 0
    message: ChatMessage
    finish_reason: FinishReason = FinishReason.STOP


class Usage(BaseModel):
    """Token usage information."""
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """Chat completion response model (OpenAI compatible)."""
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[ChatCompletionChoice]
    usage: Usage
    
    # Custom fields
    provider: Optional[str] = Field(
        default=None,
        description="Provider that handled the request"
    )
    latency_ms: Optional[int] = Field(
        default=None,
        description="Request latency in milliseconds"
    )


# ============================================================================
# Models Endpoint Schemas
# ============================================================================

class Model(BaseModel):
    """Model information."""
    id: str
    object: str = "model"
    owned_by: Optional[str] = None


class ModelsListResponse(BaseModel):
    """Models list response."""
    object: str = "list"
    data: List[Model]


# ============================================================================
# Rotation Settings Schemas
# ============================================================================

class RotationSettingsResponse(BaseModel):
    """Rotation settings as seen by the admin UI."""
    strategy: RotationStrategy
    fallback_enabled: bool


class RotationSettingsUpdate(BaseModel):
    """Partial rotation settings update."""
    strategy: Optional[RotationStrategy] = None
    fallback_enabled: Optional[bool] = None


# ============================================================================
# Credential Maintenance Schemas
# ============================================================================

class KeyTestRequest(BaseModel):
    """Optional model override for a credential test."""
    model_config = {"protected_namespaces": ()}
    
    model_id: Optional[str] = None


class KeyTestResponse(BaseModel):
    """Outcome of a credential test."""
    success: bool
    status: str
    status_code: Optional[int] = None
    error: Optional[str] = None
    response_time_ms: int


class KeyRestoreRequest(BaseModel):
    """Explicit priority restore for a demoted credential."""
    priority: Optional[int] = None


class CredentialHealthResponse(BaseModel):
    """Credential health snapshot."""
    model_config = {"from_attributes": True}
    
    id: int
    provider_id: int
    name: Optional[str] = None
    is_active: bool
    priority: int
    total_requests: int
    failed_requests: int
    last_error: Optional[str] = None
    last_used_at: Optional[datetime] = None


# ============================================================================
# Error Response Schemas
# ============================================================================

class AttemptErrorDetail(BaseModel):
    """One failed candidate."""
    provider: str
    key: Optional[str] = None
    status: int
    message: str


class ExhaustedErrorResponse(BaseModel):
    """Body returned when every candidate failed."""
    error: str
    last_error: Optional[str] = None
    details: List[AttemptErrorDetail]


class NoRouteErrorResponse(BaseModel):
    """Body returned when no candidate exists."""
    error: str
