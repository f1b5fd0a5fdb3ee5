"""
Chat completion API routes (OpenAI compatible).
"""
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from keyhub.api.dependencies import (
    CallerIdentity,
    get_cache,
    get_client_ip,
    get_http_client,
    get_session_factory,
    verify_api_key
)
from keyhub.api.schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ExhaustedErrorResponse,
    NoRouteErrorResponse
)
from keyhub.core.cache import RedisCache
from keyhub.core.exceptions import CandidatesExhausted
from keyhub.core.logger import get_logger
from keyhub.services.executor import FailoverExecutor
from keyhub.services.health import HealthTracker
from keyhub.services.selector import CandidateSelector
from keyhub.services.usage_logger import UsageLogger

logger = get_logger(__name__)

router = APIRouter(prefix="/v1/chat", tags=["chat"])


@router.post(
    "/completions",
    response_model=ChatCompletionResponse,
    responses={
        502: {"model": ExhaustedErrorResponse},
        503: {"model": NoRouteErrorResponse},
    }
)
async def create_chat_completion(
    request: ChatCompletionRequest,
    http_request: Request,
    caller: CallerIdentity = Depends(verify_api_key),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cache: RedisCache = Depends(get_cache),
    client: httpx.AsyncClient = Depends(get_http_client),
    client_ip: Optional[str] = Depends(get_client_ip)
):
    """
    Create a chat completion (OpenAI compatible).
    
    The request is tried against each candidate credential in priority
    order until one succeeds. Failing credentials are demoted on the way.
    
    - **503** when no provider serves the model
    - **502** when every candidate failed; ``details`` lists each attempt
    """
    request_id = getattr(http_request.state, "request_id", None)
    
    logger.info(
        "Chat completion request received",
        model=request.model,
        messages=len(request.messages),
        unified_key_id=caller.unified_key_id,
        client_ip=client_ip
    )
    
    usage = UsageLogger(session_factory, cache)
    executor = FailoverExecutor(
        selector=CandidateSelector(session_factory, cache),
        health=HealthTracker(session_factory, cache),
        usage=usage,
        client=client
    )
    
    try:
        return await executor.execute(
            request,
            request_id=request_id,
            unified_key_id=caller.unified_key_id
        )
    except CandidatesExhausted:
        await usage.mark_caller_failed(caller.unified_key_id)
        raise
