"""
Anthropic Messages API adapter.
"""
from typing import Any, Dict, Optional

from keyhub.adapters.base import VendorAdapter, AdapterConfig, UpstreamRequest, ParsedCompletion
from keyhub.api.schemas import ChatCompletionRequest, FinishReason, MessageRole
from keyhub.core.config import settings


class AnthropicAdapter(VendorAdapter):
    """
    Anthropic Claude adapter.
    
    System messages are hoisted into the top-level ``system`` field, the
    credential goes in ``x-api-key`` and ``max_tokens`` is always sent since
    the Messages API requires it.
    """
    
    finish_reason_map = {
        "end_turn": FinishReason.STOP,
        "stop_sequence": FinishReason.STOP,
        "max_tokens": FinishReason.LENGTH,
        "tool_use": FinishReason.TOOL_CALLS,
    }
    
    def __init__(self, config: Optional[AdapterConfig] = None):
        super().__init__(config)
        self.api_version = "2023-06-01"
    
    @property
    def default_base_url(self) -> str:
        return "https://api.anthropic.com/v1"
    
    def build_request(
        self,
        request: ChatCompletionRequest,
        api_key: str,
        model: str
    ) -> UpstreamRequest:
        headers = self.prepare_headers()
        headers["x-api-key"] = api_key
        headers["anthropic-version"] = self.api_version
        
        system_parts = []
        messages = []
        for msg in request.messages:
            if msg.role == MessageRole.SYSTEM:
                system_parts.append(msg.content)
            else:
                messages.append({"role": msg.role.value, "content": msg.content})
        
        body: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": request.max_tokens or settings.anthropic_default_max_tokens,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            body["temperature"] = request.temperature
        
        return UpstreamRequest(url=f"{self.base_url}/messages", headers=headers, body=body)
    
    def parse_response(self, body: Dict[str, Any]) -> ParsedCompletion:
        blocks = body.get("content")
        if not isinstance(blocks, list):
            raise self.malformed("anthropic", "missing content blocks")
        
        text = "".join(
            self.expect_text("anthropic", block.get("text"), "content block text")
            for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )

        usage = self.expect_object("anthropic", body.get("usage"), "usage")
        input_tokens = self.expect_tokens("anthropic", usage.get("input_tokens"), "input_tokens") or 0
        output_tokens = self.expect_tokens("anthropic", usage.get("output_tokens"), "output_tokens") or 0

        stop_reason = body.get("stop_reason")
        if not isinstance(stop_reason, str):
            stop_reason = None

        return ParsedCompletion(
            text=text,
            tokens_used=input_tokens + output_tokens,
            finish_reason=self.finish_reason_map.get(stop_reason, FinishReason.STOP),
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            upstream_id=body.get("id"),
        )
