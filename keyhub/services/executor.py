"""
Failover executor: tries candidates strictly in order until one succeeds.
"""
import time
from enum import Enum
from typing import List, Optional

import httpx
import structlog

from keyhub.adapters.factory import AdapterFactory
from keyhub.api.schemas import ChatCompletionRequest, ChatCompletionResponse
from keyhub.core.config import settings
from keyhub.core.exceptions import (
    AttemptError,
    CandidatesExhausted,
    NoRouteAvailable,
    UpstreamError,
)
from keyhub.core.logger import get_logger
from keyhub.services.health import HealthTracker
from keyhub.services.selector import Candidate, CandidateSelector
from keyhub.services.upstream import call_upstream, canonicalize
from keyhub.services.usage_logger import AttemptRecord, UsageLogger

logger = get_logger(__name__)


class ExecutorState(str, Enum):
    """Lifecycle of one routed request."""
    SELECTING = "selecting_candidates"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class FailoverExecutor:
    """
    Drives one inbound request across the candidate list.
    
    Candidates run sequentially, never in parallel, so each request bills at
    most one upstream call at a time. Every attempt's usage log entry and
    health update are committed before the next candidate is tried. Per
    candidate failures are absorbed; only the final outcome reaches the caller.
    
    One instance serves one request.
    """
    
    def __init__(
        self,
        selector: CandidateSelector,
        health: HealthTracker,
        usage: UsageLogger,
        client: httpx.AsyncClient,
        timeout: float = None
    ):
        self.selector = selector
        self.health = health
        self.usage = usage
        self.client = client
        self.timeout = timeout or settings.upstream_timeout
        
        self.state = ExecutorState.SELECTING
        self.attempted: List[Candidate] = []
        self.errors: List[AttemptError] = []
    
    async def execute(
        self,
        request: ChatCompletionRequest,
        request_id: Optional[str] = None,
        unified_key_id: Optional[int] = None
    ) -> ChatCompletionResponse:
        """
        Route a canonical chat request.
        
        Args:
            request: Canonical chat request
            request_id: Correlation id, bound into the log context while routing
            unified_key_id: Caller's unified key, recorded on usage rows
            
        Returns:
            Canonical completion from the first candidate that succeeds
            
        Raises:
            NoRouteAvailable: No candidate matched; no upstream call was made
            CandidatesExhausted: Every candidate failed
        """
        if request_id is None:
            return await self._route(request, unified_key_id)
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            return await self._route(request, unified_key_id)
    
    async def _route(
        self,
        request: ChatCompletionRequest,
        unified_key_id: Optional[int]
    ) -> ChatCompletionResponse:
        started = time.monotonic()
        self.state = ExecutorState.SELECTING
        candidates = await self.selector.select_candidates(request.model)
        
        if not candidates:
            self.state = ExecutorState.EXHAUSTED
            logger.warning("No route available", model=request.model)
            raise NoRouteAvailable(request.model)
        
        for position, candidate in enumerate(candidates, start=1):
            self.state = ExecutorState.ATTEMPTING
            self.attempted.append(candidate)
            
            response = await self._attempt(candidate, request, unified_key_id, position)
            if response is not None:
                self.state = ExecutorState.SUCCEEDED
                response.latency_ms = int((time.monotonic() - started) * 1000)
                return response
        
        self.state = ExecutorState.EXHAUSTED
        exhausted = CandidatesExhausted(self.errors)
        logger.error(
            "All candidates failed",
            model=request.model,
            attempts=len(self.errors),
            all_rate_limited=exhausted.all_rate_limited
        )
        raise exhausted
    
    async def _attempt(
        self,
        candidate: Candidate,
        request: ChatCompletionRequest,
        unified_key_id: Optional[int],
        position: int
    ) -> Optional[ChatCompletionResponse]:
        """Run one candidate; returns None when it failed and was accounted for."""
        provider, credential = candidate.provider, candidate.credential
        adapter = AdapterFactory.for_provider(provider)
        model = adapter.resolve_model(request, settings.default_model)
        
        if not model:
            # Caller's omission, not the credential's fault: no call, no demotion
            message = "No model requested and provider has no default model"
            logger.warning(message, provider=provider.name)
            self.errors.append(AttemptError(provider.name, credential.display_name, 400, message))
            return None
        
        logger.info(
            f"Attempting provider: {provider.name}",
            provider=provider.name,
            credential_id=credential.id,
            model=model,
            position=position
        )
        
        start = time.monotonic()
        try:
            parsed = await call_upstream(
                self.client, adapter, request, credential.api_key, model, self.timeout
            )
            # Built before any success bookkeeping so a bad body still fails over
            response = canonicalize(adapter, parsed, model)
        except UpstreamError as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.warning(
                f"Provider {provider.name} failed: {e.message}",
                provider=provider.name,
                credential_id=credential.id,
                status_code=e.status_code,
                error_type=type(e).__name__
            )
            
            await self.usage.record(AttemptRecord(
                provider_id=provider.id,
                credential_id=credential.id,
                model_name=model,
                status="error",
                status_code=e.status_code,
                error_message=e.message,
                response_time_ms=latency_ms,
                unified_key_id=unified_key_id,
                provider_name=provider.name,
                api_key_name=credential.display_name,
            ))
            await self.health.record_failure(credential.id, provider.id, e.message, e.severity)
            
            self.errors.append(
                AttemptError(provider.name, credential.display_name, e.status_code, e.message)
            )
            return None
        
        latency_ms = int((time.monotonic() - start) * 1000)
        await self.usage.record(AttemptRecord(
            provider_id=provider.id,
            credential_id=credential.id,
            model_name=model,
            status="success",
            status_code=200,
            response_time_ms=latency_ms,
            tokens_used=parsed.tokens_used,
            unified_key_id=unified_key_id,
            provider_name=provider.name,
            api_key_name=credential.display_name,
        ))
        await self.health.record_success(credential.id)
        
        logger.info(
            "Chat completion served",
            provider=provider.name,
            credential_id=credential.id,
            latency_ms=latency_ms,
            tokens=parsed.tokens_used
        )
        
        response.provider = provider.name
        return response
