"""
Base vendor adapter and wire-level value types.
"""
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from keyhub.api.schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatCompletionChoice,
    ChatMessage,
    FinishReason,
    MessageRole,
    Usage,
)
from keyhub.core.exceptions import UpstreamError
from keyhub.core.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AdapterConfig:
    """Per-provider adapter configuration."""
    
    base_url: Optional[str] = None
    default_model: Optional[str] = None
    
    def get_effective_base_url(self, default_url: str) -> str:
        """Get effective base URL (use config or default), without trailing slash."""
        return (self.base_url or default_url).rstrip("/")


@dataclass
class UpstreamRequest:
    """Everything needed to perform one upstream POST."""
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]


@dataclass
class ParsedCompletion:
    """Assistant text and accounting extracted from a vendor response."""
    text: str
    tokens_used: int
    finish_reason: FinishReason = FinishReason.STOP
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    upstream_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class VendorAdapter(ABC):
    """
    Translates canonical chat requests into one vendor's wire format and the
    vendor's response back into the canonical completion.
    
    Adapters are pure: they never perform I/O, which keeps the failover loop
    the single place where upstream calls happen.
    """
    
    def __init__(self, config: Optional[AdapterConfig] = None):
        self.config = config or AdapterConfig()
    
    @property
    @abstractmethod
    def default_base_url(self) -> str:
        """Default base URL for the vendor."""
    
    @property
    def base_url(self) -> str:
        return self.config.get_effective_base_url(self.default_base_url)
    
    def resolve_model(self, request: ChatCompletionRequest, fallback: Optional[str] = None) -> Optional[str]:
        """Model sent upstream: the caller's, else the provider's default, else ``fallback``."""
        return request.model or self.config.default_model or fallback
    
    @abstractmethod
    def build_request(
        self,
        request: ChatCompletionRequest,
        api_key: str,
        model: str
    ) -> UpstreamRequest:
        """
        Build the vendor request for one attempt.
        
        Args:
            request: Canonical chat request
            api_key: Credential secret
            model: Resolved upstream model name
            
        Returns:
            URL, headers and JSON body
        """
    
    @abstractmethod
    def parse_response(self, body: Dict[str, Any]) -> ParsedCompletion:
        """
        Extract assistant text and token usage from a vendor response body.
        
        Raises:
            UpstreamError: If the body does not have the expected shape
        """
    
    def prepare_headers(self) -> Dict[str, str]:
        """Common request headers."""
        return {
            "Content-Type": "application/json",
            "User-Agent": "keyhub-gateway/1.0"
        }
    
    def extract_error_message(self, status_code: int, body: Any) -> str:
        """
        Normalize an error body into a single line message.
        
        Understands ``{"error": {"message": ...}}``, ``{"error": "..."}`` and
        ``{"message": ...}``; falls back to the bare HTTP status.
        """
        message = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                message = error.get("message")
            elif isinstance(error, str):
                message = error
            message = message or body.get("message")
        elif isinstance(body, str) and body.strip():
            message = body.strip()[:500]
        
        if message:
            return f"HTTP {status_code}: {message}"
        return f"HTTP {status_code}"
    
    def to_canonical(self, parsed: ParsedCompletion, model: str) -> ChatCompletionResponse:
        """Wrap parsed output into an OpenAI-compatible completion object."""
        return ChatCompletionResponse(
            id=parsed.upstream_id or f"chatcmpl-{uuid.uuid4().hex}",
            created=int(time.time()),
            model=model,
            choices=[
                ChatCompletionChoice(
                    index=0,
                    message=ChatMessage(role=MessageRole.ASSISTANT, content=parsed.text),
                    finish_reason=parsed.finish_reason,
                )
            ],
            usage=Usage(
                prompt_tokens=parsed.prompt_tokens,
                completion_tokens=parsed.completion_tokens,
                total_tokens=parsed.tokens_used,
            ),
        )
    
    @staticmethod
    def malformed(vendor: str, detail: str) -> UpstreamError:
        """Error for a 2xx response whose body cannot be understood."""
        logger.warning("Malformed upstream response", vendor=vendor, detail=detail)
        return UpstreamError(f"Malformed {vendor} response: {detail}", status_code=502)

    @classmethod
    def expect_object(cls, vendor: str, value: Any, what: str) -> Dict[str, Any]:
        """``value`` as a JSON object; null counts as empty."""
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise cls.malformed(vendor, f"{what} is not an object")
        return value

    @classmethod
    def expect_text(cls, vendor: str, value: Any, what: str) -> str:
        """``value`` as a string; null counts as empty."""
        if value is None:
            return ""
        if not isinstance(value, str):
            raise cls.malformed(vendor, f"{what} is not a string")
        return value

    @classmethod
    def expect_tokens(cls, vendor: str, value: Any, what: str) -> Optional[int]:
        """Token counter as a non-negative int, or None when absent."""
        if value is None:
            return None
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise cls.malformed(vendor, f"{what} is not a token count")
        return int(value)
