"""
Google Gemini (generateContent) adapter.
"""
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

from keyhub.adapters.base import VendorAdapter, AdapterConfig, UpstreamRequest, ParsedCompletion
from keyhub.api.schemas import ChatCompletionRequest, FinishReason, MessageRole


class GeminiAdapter(VendorAdapter):
    """
    Google Gemini adapter.
    
    The credential travels in the ``key`` query parameter, messages become
    ``contents``/``parts`` and the ``assistant`` role is renamed ``model``.
    """
    
    finish_reason_map = {
        "STOP": FinishReason.STOP,
        "MAX_TOKENS": FinishReason.LENGTH,
        "SAFETY": FinishReason.CONTENT_FILTER,
        "RECITATION": FinishReason.CONTENT_FILTER,
        "BLOCKLIST": FinishReason.CONTENT_FILTER,
        "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER,
    }
    
    def __init__(self, config: Optional[AdapterConfig] = None):
        super().__init__(config)
        self.api_version = "v1beta"
    
    @property
    def default_base_url(self) -> str:
        return f"https://generativelanguage.googleapis.com/{self.api_version}"
    
    def build_request(
        self,
        request: ChatCompletionRequest,
        api_key: str,
        model: str
    ) -> UpstreamRequest:
        contents = []
        system_parts = []
        
        for msg in request.messages:
            if msg.role == MessageRole.SYSTEM:
                system_parts.append({"text": msg.content})
            else:
                role = "model" if msg.role == MessageRole.ASSISTANT else "user"
                contents.append({"role": role, "parts": [{"text": msg.content}]})
        
        body: Dict[str, Any] = {"contents": contents}
        if system_parts:
            body["systemInstruction"] = {"parts": system_parts}
        
        generation_config = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.max_tokens is not None:
            generation_config["maxOutputTokens"] = request.max_tokens
        if generation_config:
            body["generationConfig"] = generation_config
        
        url = (
            f"{self.base_url}/models/{quote(model, safe='.-_')}:generateContent"
            f"?{urlencode({'key': api_key})}"
        )
        return UpstreamRequest(url=url, headers=self.prepare_headers(), body=body)
    
    def parse_response(self, body: Dict[str, Any]) -> ParsedCompletion:
        candidates = body.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise self.malformed("gemini", "missing candidates")
        
        candidate = self.expect_object("gemini", candidates[0], "candidate")
        content = self.expect_object("gemini", candidate.get("content"), "candidate content")
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            raise self.malformed("gemini", "content parts is not a list")
        text = "".join(
            self.expect_text("gemini", part.get("text"), "part text")
            for part in parts
            if isinstance(part, dict)
        )

        usage = self.expect_object("gemini", body.get("usageMetadata"), "usageMetadata")
        prompt_tokens = self.expect_tokens("gemini", usage.get("promptTokenCount"), "promptTokenCount")
        completion_tokens = self.expect_tokens("gemini", usage.get("candidatesTokenCount"), "candidatesTokenCount")
        total = self.expect_tokens("gemini", usage.get("totalTokenCount"), "totalTokenCount")
        if total is None:
            total = (prompt_tokens or 0) + (completion_tokens or 0)

        finish_reason = candidate.get("finishReason")
        if not isinstance(finish_reason, str):
            finish_reason = None

        return ParsedCompletion(
            text=text,
            tokens_used=total,
            finish_reason=self.finish_reason_map.get(finish_reason, FinishReason.STOP),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            upstream_id=body.get("responseId"),
        )
