"""
Generic OpenAI-compatible adapter.
"""
from typing import Any, Dict

from keyhub.adapters.base import VendorAdapter, UpstreamRequest, ParsedCompletion
from keyhub.api.schemas import ChatCompletionRequest, FinishReason


class OpenAICompatibleAdapter(VendorAdapter):
    """
    Adapter for OpenAI and any vendor exposing the same chat completions API
    (Groq, OpenRouter, Together, local servers, ...).
    
    Messages pass through unchanged and the credential travels as a bearer token.
    """
    
    @property
    def default_base_url(self) -> str:
        return "https://api.openai.com/v1"
    
    @property
    def completions_url(self) -> str:
        url = self.base_url
        if not url.endswith("/chat/completions"):
            url = f"{url}/chat/completions"
        return url
    
    def build_request(
        self,
        request: ChatCompletionRequest,
        api_key: str,
        model: str
    ) -> UpstreamRequest:
        headers = self.prepare_headers()
        headers["Authorization"] = f"Bearer {api_key}"
        
        body: Dict[str, Any] = {
            "model": model,
            "messages": [msg.model_dump(mode="json") for msg in request.messages],
        }
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            body["temperature"] = request.temperature
        
        return UpstreamRequest(url=self.completions_url, headers=headers, body=body)
    
    def parse_response(self, body: Dict[str, Any]) -> ParsedCompletion:
        choices = body.get("choices")
        if not isinstance(choices, list) or not choices:
            raise self.malformed("openai", "missing choices")
        
        choice = self.expect_object("openai", choices[0], "choice")
        message = self.expect_object("openai", choice.get("message"), "message")
        text = self.expect_text("openai", message.get("content"), "message content")

        try:
            finish_reason = FinishReason(choice.get("finish_reason") or "stop")
        except (ValueError, TypeError):
            finish_reason = FinishReason.STOP

        usage = self.expect_object("openai", body.get("usage"), "usage")
        prompt_tokens = self.expect_tokens("openai", usage.get("prompt_tokens"), "prompt_tokens")
        completion_tokens = self.expect_tokens("openai", usage.get("completion_tokens"), "completion_tokens")
        total = self.expect_tokens("openai", usage.get("total_tokens"), "total_tokens")
        if total is None:
            total = (prompt_tokens or 0) + (completion_tokens or 0)
        
        return ParsedCompletion(
            text=text,
            tokens_used=total,
            finish_reason=finish_reason,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            upstream_id=body.get("id"),
        )
