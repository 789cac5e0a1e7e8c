"""
Tests for travelchat/services/llm/vertex_provider.py
HTTP is served by httpx.MockTransport; no network access.
"""
from __future__ import annotations

import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from langchain_core.messages import ChatMessage

from travelchat.services.credentials import CredentialsError
from travelchat.services.llm import LLMProviderError, UpstreamErrorKind, VertexGeminiProvider, create_provider
from travelchat.services.llm.vertex_provider import classify_error, collect_text, to_gemini_contents

PROVISIONING_BODY = {
    "error": {
        "code": 400,
        "message": "Service agents are being provisioned (https://cloud.google.com/vertex-ai/docs/...).",
        "status": "FAILED_PRECONDITION",
    }
}


def make_provider(handler) -> VertexGeminiProvider:
    token_provider = Mock()
    token_provider.get_token = AsyncMock(return_value="test-token")
    return VertexGeminiProvider(
        project_id="demo-project",
        token_provider=token_provider,
        model="gemini-test",
        generation_config={"temperature": 0.7},
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def answer(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}], "usageMetadata": {"totalTokenCount": 7}}


class TestClassifyError:

    def test_structured_provisioning(self):
        kind, parsed = classify_error(json.dumps(PROVISIONING_BODY))
        assert kind is UpstreamErrorKind.PROVISIONING
        assert parsed["error"]["status"] == "FAILED_PRECONDITION"

    def test_marker_with_other_status_is_not_provisioning(self):
        body = {"error": {"message": "Service agents are being provisioned", "status": "PERMISSION_DENIED"}}
        kind, _ = classify_error(json.dumps(body))
        assert kind is UpstreamErrorKind.UNAVAILABLE

    def test_plain_text_fallback(self):
        kind, parsed = classify_error("upstream said: service agents are being provisioned")
        assert kind is UpstreamErrorKind.PROVISIONING
        assert parsed == {}

    def test_other_errors(self):
        kind, _ = classify_error(json.dumps({"error": {"message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}))
        assert kind is UpstreamErrorKind.UNAVAILABLE


class TestMessageConversion:

    def test_roles_and_parts(self):
        messages = [
            ChatMessage(role="system", content="be brief"),
            ChatMessage(role="user", content="Hi"),
            ChatMessage(role="model", content="Hello"),
            ChatMessage(
                role="user",
                content=[
                    {"type": "text", "text": "What is this?"},
                    {"type": "media", "file_uri": "gs://b/x.webp", "mime_type": "image/webp"},
                ],
            ),
        ]
        contents, system_texts = to_gemini_contents(messages)

        assert system_texts == ["be brief"]
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[2]["parts"][1] == {"file_data": {"mime_type": "image/webp", "file_uri": "gs://b/x.webp"}}

    def test_collect_text_skips_thoughts(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "thinking", "thought": True}, {"text": " Go to Kandy. "}]}}]}
        assert collect_text(payload) == "Go to Kandy."

    def test_collect_text_empty(self):
        assert collect_text({}) is None
        assert collect_text({"candidates": [{"content": {"parts": []}}]}) is None


class TestVertexGeminiProvider:

    async def test_successful_call(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=answer("Visit Sigiriya."))

        provider = make_provider(handler)
        text, meta = await provider.chat([ChatMessage(role="user", content="Where?")], system_instruction="sys")
        await provider.aclose()

        assert text == "Visit Sigiriya."
        assert meta["totalTokenCount"] == 7
        assert seen["url"].endswith(
            "/projects/demo-project/locations/global/publishers/google/models/gemini-test:generateContent"
        )
        assert seen["auth"] == "Bearer test-token"
        assert seen["body"]["system_instruction"] == {"parts": [{"text": "sys"}]}
        assert seen["body"]["generationConfig"] == {"temperature": 0.7}

    async def test_provisioning_error(self):
        provider = make_provider(lambda request: httpx.Response(400, json=PROVISIONING_BODY))
        with pytest.raises(LLMProviderError) as info:
            await provider.chat([ChatMessage(role="user", content="Hi")])
        assert info.value.kind is UpstreamErrorKind.PROVISIONING
        assert info.value.status == 400

    async def test_server_error(self):
        provider = make_provider(lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(LLMProviderError) as info:
            await provider.chat([ChatMessage(role="user", content="Hi")])
        assert info.value.kind is UpstreamErrorKind.UNAVAILABLE

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = make_provider(handler)
        with pytest.raises(LLMProviderError) as info:
            await provider.chat([ChatMessage(role="user", content="Hi")])
        assert info.value.kind is UpstreamErrorKind.TIMEOUT

    async def test_token_failure(self):
        provider = make_provider(lambda request: httpx.Response(200, json=answer("x")))
        provider._token_provider.get_token = AsyncMock(side_effect=CredentialsError("expired"))
        with pytest.raises(LLMProviderError) as info:
            await provider.chat([ChatMessage(role="user", content="Hi")])
        assert info.value.kind is UpstreamErrorKind.UNAVAILABLE


class TestRegistry:

    def test_missing_credentials(self, settings):
        assert create_provider(settings) is None

    def test_unknown_provider(self, settings):
        with pytest.raises(ValueError):
            create_provider(settings.model_copy(update={"llm_provider": "openai"}))
