"""
Single upstream call: the only place the engine talks to a vendor.
"""
import asyncio
from typing import Any

import httpx
from pydantic import ValidationError

from keyhub.adapters.base import VendorAdapter, ParsedCompletion
from keyhub.api.schemas import ChatCompletionRequest, ChatCompletionResponse
from keyhub.core.exceptions import (
    UpstreamNetworkError,
    UpstreamTimeout,
    http_error_for,
)


async def call_upstream(
    client: httpx.AsyncClient,
    adapter: VendorAdapter,
    request: ChatCompletionRequest,
    api_key: str,
    model: str,
    timeout: float
) -> ParsedCompletion:
    """
    Perform one upstream request bounded by ``timeout`` seconds overall.
    
    Raises:
        UpstreamTimeout: The call did not complete in time
        UpstreamNetworkError: Connection-level failure
        UpstreamHTTPError: Non-2xx status (or a quota/credential specialization)
        UpstreamError: 2xx response with an unusable body
    """
    upstream = adapter.build_request(request, api_key, model)
    
    try:
        response = await asyncio.wait_for(
            client.post(
                upstream.url,
                headers=upstream.headers,
                json=upstream.body,
                timeout=timeout
            ),
            timeout=timeout
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        raise UpstreamTimeout(f"Upstream request timed out after {timeout:g}s")
    except httpx.RequestError as e:
        raise UpstreamNetworkError(f"{type(e).__name__}: {e}" if str(e) else type(e).__name__)
    
    if not response.is_success:
        raise http_error_for(
            response.status_code,
            adapter.extract_error_message(response.status_code, _error_body(response))
        )
    
    try:
        data = response.json()
    except ValueError:
        raise adapter.malformed(type(adapter).__name__, "body is not JSON")
    if not isinstance(data, dict):
        raise adapter.malformed(type(adapter).__name__, "body is not a JSON object")
    
    try:
        return adapter.parse_response(data)
    except (ValueError, TypeError, AttributeError, KeyError) as e:
        raise adapter.malformed(type(adapter).__name__, f"{type(e).__name__}: {e}")


def canonicalize(
    adapter: VendorAdapter,
    parsed: ParsedCompletion,
    model: str
) -> ChatCompletionResponse:
    """
    Build the canonical completion for a parsed upstream reply.
    
    Raises:
        UpstreamError: The parsed values do not fit the canonical schema
    """
    try:
        return adapter.to_canonical(parsed, model)
    except (ValidationError, ValueError, TypeError, AttributeError) as e:
        raise adapter.malformed(type(adapter).__name__, f"{type(e).__name__}: {e}")


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
