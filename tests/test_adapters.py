"""
Vendor adapter tests.
"""
import pytest

from keyhub.adapters import AdapterFactory
from keyhub.adapters.anthropic import AnthropicAdapter
from keyhub.adapters.base import AdapterConfig
from keyhub.adapters.gemini import GeminiAdapter
from keyhub.adapters.openai import OpenAICompatibleAdapter
from keyhub.api.schemas import ChatCompletionRequest, ChatMessage, FinishReason, MessageRole
from keyhub.core.exceptions import UpstreamError
from keyhub.models import Provider, VendorKind
from tests.fakes import anthropic_body, gemini_body, openai_body


@pytest.fixture
def chat_request():
    return ChatCompletionRequest(
        model="test-model",
        messages=[
            ChatMessage(role=MessageRole.SYSTEM, content="Be brief."),
            ChatMessage(role=MessageRole.USER, content="Hi"),
            ChatMessage(role=MessageRole.ASSISTANT, content="Hello!"),
            ChatMessage(role=MessageRole.USER, content="How are you?"),
        ],
        max_tokens=64,
        temperature=0.5
    )


class TestOpenAICompatibleAdapter:
    
    def test_build_request(self, chat_request):
        upstream = OpenAICompatibleAdapter().build_request(chat_request, "sk-test", "gpt-4o-mini")
        
        assert upstream.url == "https://api.openai.com/v1/chat/completions"
        assert upstream.headers["Authorization"] == "Bearer sk-test"
        assert upstream.body["model"] == "gpt-4o-mini"
        assert upstream.body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert upstream.body["max_tokens"] == 64
        assert upstream.body["temperature"] == 0.5
    
    def test_custom_base_url(self, chat_request):
        adapter = OpenAICompatibleAdapter(AdapterConfig(base_url="https://api.deepseek.com/v1/"))
        
        assert adapter.build_request(chat_request, "k", "m").url == "https://api.deepseek.com/v1/chat/completions"
    
    def test_full_completions_url_is_kept(self, chat_request):
        adapter = OpenAICompatibleAdapter(AdapterConfig(base_url="https://proxy.local/openai/chat/completions"))
        
        assert adapter.build_request(chat_request, "k", "m").url == "https://proxy.local/openai/chat/completions"
    
    def test_parse_response(self):
        parsed = OpenAICompatibleAdapter().parse_response(openai_body("Fine, thanks.", total_tokens=33))
        
        assert parsed.text == "Fine, thanks."
        assert parsed.tokens_used == 33
        assert parsed.finish_reason == FinishReason.STOP
    
    def test_parse_response_without_choices(self):
        with pytest.raises(UpstreamError) as exc_info:
            OpenAICompatibleAdapter().parse_response({"choices": []})
        
        assert exc_info.value.status_code == 502
    
    @pytest.mark.parametrize("body", [
        {"choices": ["oops"]},
        {"choices": [{"message": "hi"}]},
        {"choices": [{"message": {"content": [{"type": "text", "text": "hi"}]}}]},
        {"choices": [{"message": {"content": "hi"}}], "usage": []},
        {"choices": [{"message": {"content": "hi"}}], "usage": {"total_tokens": "12"}},
    ])
    def test_parse_response_rejects_badly_typed_fields(self, body):
        with pytest.raises(UpstreamError) as exc_info:
            OpenAICompatibleAdapter().parse_response(body)
        
        assert exc_info.value.status_code == 502
        assert exc_info.value.message.startswith("Malformed openai response")
    
    def test_parse_response_null_content_is_empty_text(self):
        parsed = OpenAICompatibleAdapter().parse_response(
            {"choices": [{"message": {"content": None}, "finish_reason": "length"}]}
        )
        
        assert parsed.text == ""
        assert parsed.tokens_used == 0
        assert parsed.finish_reason == FinishReason.LENGTH


class TestAnthropicAdapter:
    
    def test_build_request(self, chat_request):
        upstream = AnthropicAdapter().build_request(chat_request, "sk-ant", "claude-3-5-haiku-latest")
        
        assert upstream.url == "https://api.anthropic.com/v1/messages"
        assert upstream.headers["x-api-key"] == "sk-ant"
        assert upstream.headers["anthropic-version"] == "2023-06-01"
        assert upstream.body["system"] == "Be brief."
        assert [m["role"] for m in upstream.body["messages"]] == ["user", "assistant", "user"]
        assert upstream.body["max_tokens"] == 64
    
    def test_max_tokens_default(self):
        request = ChatCompletionRequest(messages=[ChatMessage(role=MessageRole.USER, content="Hi")])
        
        upstream = AnthropicAdapter().build_request(request, "k", "claude")
        
        assert upstream.body["max_tokens"] > 0
        assert "temperature" not in upstream.body
    
    def test_parse_response(self):
        parsed = AnthropicAdapter().parse_response(anthropic_body("Doing well.", input_tokens=5, output_tokens=4))
        
        assert parsed.text == "Doing well."
        assert parsed.tokens_used == 9
        assert parsed.finish_reason == FinishReason.STOP
    
    def test_parse_response_max_tokens_stop(self):
        body = anthropic_body()
        body["stop_reason"] = "max_tokens"
        
        assert AnthropicAdapter().parse_response(body).finish_reason == FinishReason.LENGTH
    
    @pytest.mark.parametrize("body", [
        {"content": [{"type": "text", "text": ["hi"]}]},
        {"content": [], "usage": "none"},
        {"content": [], "usage": {"input_tokens": "5"}},
    ])
    def test_parse_response_rejects_badly_typed_fields(self, body):
        with pytest.raises(UpstreamError) as exc_info:
            AnthropicAdapter().parse_response(body)
        
        assert exc_info.value.message.startswith("Malformed anthropic response")
    
    def test_parse_response_skips_non_text_blocks(self):
        body = anthropic_body("answer")
        body["content"].insert(0, {"type": "tool_use", "id": "t1", "input": {}})
        
        assert AnthropicAdapter().parse_response(body).text == "answer"


class TestGeminiAdapter:
    
    def test_build_request(self, chat_request):
        upstream = GeminiAdapter().build_request(chat_request, "AIza-test", "gemini-1.5-flash")
        
        assert upstream.url == (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "gemini-1.5-flash:generateContent?key=AIza-test"
        )
        assert upstream.body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert [c["role"] for c in upstream.body["contents"]] == ["user", "model", "user"]
        assert upstream.body["generationConfig"] == {"temperature": 0.5, "maxOutputTokens": 64}
    
    def test_parse_response(self):
        parsed = GeminiAdapter().parse_response(gemini_body("Great!", total_tokens=42))
        
        assert parsed.text == "Great!"
        assert parsed.tokens_used == 42
        assert parsed.finish_reason == FinishReason.STOP
    
    def test_parse_response_without_candidates(self):
        with pytest.raises(UpstreamError):
            GeminiAdapter().parse_response({"promptFeedback": {"blockReason": "SAFETY"}})
    
    @pytest.mark.parametrize("body", [
        {"candidates": ["oops"]},
        {"candidates": [{"content": "hi"}]},
        {"candidates": [{"content": {"parts": {"text": "hi"}}}]},
        {"candidates": [{"content": {"parts": [{"text": 7}]}}]},
        {"candidates": [{"content": {"parts": [{"text": "hi"}]}}], "usageMetadata": {"totalTokenCount": -1}},
    ])
    def test_parse_response_rejects_badly_typed_fields(self, body):
        with pytest.raises(UpstreamError) as exc_info:
            GeminiAdapter().parse_response(body)
        
        assert exc_info.value.message.startswith("Malformed gemini response")
    
    def test_parse_response_null_part_text_is_empty(self):
        body = {"candidates": [{"content": {"parts": [{"text": None}, {"text": "ok"}]}, "finishReason": "SAFETY"}]}
        
        parsed = GeminiAdapter().parse_response(body)
        
        assert parsed.text == "ok"
        assert parsed.finish_reason == FinishReason.CONTENT_FILTER


class TestAdapterCommon:
    
    def test_extract_error_message(self):
        adapter = OpenAICompatibleAdapter()
        
        assert adapter.extract_error_message(429, {"error": {"message": "slow down"}}) == "HTTP 429: slow down"
        assert adapter.extract_error_message(500, {"error": "boom"}) == "HTTP 500: boom"
        assert adapter.extract_error_message(503, "") == "HTTP 503"
    
    def test_resolve_model_order(self):
        request = ChatCompletionRequest(messages=[ChatMessage(role=MessageRole.USER, content="Hi")])
        adapter = OpenAICompatibleAdapter(AdapterConfig(default_model="provider-default"))
        
        assert adapter.resolve_model(request, "global-default") == "provider-default"
        assert OpenAICompatibleAdapter().resolve_model(request, "global-default") == "global-default"
        assert OpenAICompatibleAdapter().resolve_model(request) is None
    
    def test_to_canonical(self):
        adapter = GeminiAdapter()
        parsed = adapter.parse_response(gemini_body("Hi there", total_tokens=12))
        
        response = adapter.to_canonical(parsed, "gemini-1.5-flash")
        
        assert response.object == "chat.completion"
        assert response.model == "gemini-1.5-flash"
        assert response.choices[0].message.role == MessageRole.ASSISTANT
        assert response.choices[0].message.content == "Hi there"
        assert response.choices[0].finish_reason == FinishReason.STOP
        assert response.usage.total_tokens == 12


class TestAdapterFactory:
    
    @pytest.mark.parametrize("kind,adapter_class", [
        (VendorKind.GOOGLE, GeminiAdapter),
        (VendorKind.ANTHROPIC, AnthropicAdapter),
        (VendorKind.OPENAI_COMPATIBLE, OpenAICompatibleAdapter),
    ])
    def test_for_provider(self, kind, adapter_class):
        provider = Provider(name="p", vendor_kind=kind, default_model="dm")
        
        adapter = AdapterFactory.for_provider(provider)
        
        assert isinstance(adapter, adapter_class)
        assert adapter.config.default_model == "dm"
    
    def test_supported_kinds(self):
        assert set(AdapterFactory.get_supported_kinds()) == {kind.value for kind in VendorKind}
