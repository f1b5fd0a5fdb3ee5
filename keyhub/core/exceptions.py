"""
Error taxonomy for routing and upstream failures.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class FailureSeverity(str, Enum):
    """How bad an upstream failure is for the credential that caused it."""
    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_CREDENTIAL = "invalid_credential"
    UPSTREAM_ERROR = "upstream_error"


def classify_failure(status_code: Optional[int], message: Optional[str]) -> FailureSeverity:
    """
    Classify a failed attempt from its HTTP status and error text.
    
    429 or a message mentioning quota/rate limit is a quota problem,
    401/403 is a bad credential, anything else is a generic upstream error.
    """
    text = (message or "").lower()
    if status_code == 429 or "quota" in text or "rate limit" in text:
        return FailureSeverity.QUOTA_EXCEEDED
    if status_code in (401, 403):
        return FailureSeverity.INVALID_CREDENTIAL
    return FailureSeverity.UPSTREAM_ERROR


class GatewayError(Exception):
    """Base exception for the gateway."""
    
    status_code: int = 500
    
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NoRouteAvailable(GatewayError):
    """No active provider/credential can serve the requested model."""
    
    status_code = 503
    
    def __init__(self, model: Optional[str]):
        self.model = model
        super().__init__(f"No active route for model {model or '(unspecified)'}")


# ============================================================================
# Upstream failures (absorbed per candidate, never surfaced individually)
# ============================================================================

class UpstreamError(GatewayError):
    """A single upstream attempt failed."""
    
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code
    
    @property
    def severity(self) -> FailureSeverity:
        return classify_failure(self.status_code, self.message)


class UpstreamTimeout(UpstreamError):
    """Upstream did not answer within the attempt timeout."""
    
    def __init__(self, message: str = "Upstream request timed out"):
        super().__init__(message, status_code=504)


class UpstreamNetworkError(UpstreamError):
    """Connection-level failure before an HTTP status was received."""
    
    def __init__(self, message: str):
        super().__init__(message, status_code=502)


class UpstreamHTTPError(UpstreamError):
    """Upstream answered with a non-2xx status."""


class QuotaExceeded(UpstreamHTTPError):
    """Upstream rejected the credential for quota or rate limit reasons."""


class InvalidCredential(UpstreamHTTPError):
    """Upstream rejected the credential itself (401/403)."""


def http_error_for(status_code: int, message: str) -> UpstreamHTTPError:
    """Build the most specific UpstreamHTTPError for a status/message pair."""
    severity = classify_failure(status_code, message)
    if severity is FailureSeverity.QUOTA_EXCEEDED:
        return QuotaExceeded(message, status_code=status_code)
    if severity is FailureSeverity.INVALID_CREDENTIAL:
        return InvalidCredential(message, status_code=status_code)
    return UpstreamHTTPError(message, status_code=status_code)


# ============================================================================
# Exhaustion
# ============================================================================

ALL_RATE_LIMITED_MESSAGE = "All credentials are rate limited."
ALL_FAILED_MESSAGE = "All providers failed to process the request."


@dataclass
class AttemptError:
    """Structured record of one failed candidate, reported to the caller."""
    provider: str
    key: Optional[str]
    status: int
    message: str
    
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CandidatesExhausted(GatewayError):
    """Every candidate was attempted and every attempt failed."""
    
    status_code = 502
    
    def __init__(self, errors: List[AttemptError]):
        self.errors = errors
        self.all_rate_limited = bool(errors) and all(e.status == 429 for e in errors)
        super().__init__(
            ALL_RATE_LIMITED_MESSAGE if self.all_rate_limited else ALL_FAILED_MESSAGE
        )
    
    @property
    def last_error(self) -> Optional[str]:
        return self.errors[-1].message if self.errors else None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "last_error": self.last_error,
            "details": [e.to_dict() for e in self.errors],
        }
