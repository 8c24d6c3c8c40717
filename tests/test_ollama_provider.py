"""
Unit tests for persona_memory.llm.ollama_provider
"""

import json

import httpx
import pytest

from persona_memory.core.exceptions import ExternalCallFailure
from persona_memory.core.models import MemoryRecord
from persona_memory.llm.ollama_provider import OllamaProvider


def make_provider(handler, **kwargs) -> OllamaProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaProvider(base_url="http://ollama.test", client=client, **kwargs)


class TestOptions:
    """Test generation option validation"""

    @pytest.mark.parametrize("temperature", [-0.1, 2.5])
    def test_temperature_range(self, temperature):
        with pytest.raises(ValueError):
            OllamaProvider(temperature=temperature)

    @pytest.mark.parametrize("top_p", [-0.5, 1.1])
    def test_top_p_range(self, top_p):
        with pytest.raises(ValueError):
            OllamaProvider(top_p=top_p)


class TestRequests:
    """Test request payloads and response handling"""

    @pytest.mark.asyncio
    async def test_complete(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "  Hello!  "})

        provider = make_provider(handler, default_model="tiny", temperature=0.2, top_p=0.5)
        reply = await provider.complete("Say hi", max_tokens=32)
        await provider.close()

        assert reply == "Hello!"
        assert seen["path"] == "/api/generate"
        assert seen["payload"]["model"] == "tiny"
        assert seen["payload"]["stream"] is False
        assert seen["payload"]["options"] == {"temperature": 0.2, "top_p": 0.5, "num_predict": 32}

    @pytest.mark.asyncio
    async def test_embed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/embeddings"
            assert json.loads(request.content)["model"] == "embedder"
            return httpx.Response(200, json={"embedding": [0.5, -1, 2]})

        provider = make_provider(handler, embedding_model="embedder")

        assert await provider.embed("text") == [0.5, -1.0, 2.0]

    @pytest.mark.asyncio
    async def test_missing_embedding_fails(self):
        provider = make_provider(lambda request: httpx.Response(200, json={}))

        with pytest.raises(ExternalCallFailure):
            await provider.embed("text")

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        provider = make_provider(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(ExternalCallFailure) as exc_info:
            await provider.complete("hi", max_tokens=8)
        assert exc_info.value.operation == "complete"
        assert "HTTP 500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_provider(handler)

        with pytest.raises(ExternalCallFailure):
            await provider.embed("hi")
        assert await provider.is_available() is False

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        provider = make_provider(lambda request: httpx.Response(200, text="not json"))

        with pytest.raises(ExternalCallFailure):
            await provider.complete("hi", max_tokens=8)

    @pytest.mark.asyncio
    async def test_list_models(self):
        provider = make_provider(
            lambda request: httpx.Response(200, json={"models": [{"name": "a"}, {"name": "b"}]})
        )

        assert await provider.list_available_models() == ["a", "b"]
        assert await provider.is_available() is True


class TestElicitation:
    """Test importance and insight prompts and parsing"""

    @pytest.mark.asyncio
    async def test_score_importance(self):
        prompts = []

        def handler(request):
            prompts.append(json.loads(request.content)["prompt"])
            return httpx.Response(200, json={"response": "Rating: 7"})

        provider = make_provider(handler)

        assert await provider.score_importance("I got married today") == 7
        assert "I got married today" in prompts[0]

    @pytest.mark.asyncio
    async def test_synthesize(self):
        records = [
            MemoryRecord(id=1, text="Alice bought hiking boots", embedding=[1.0], importance=4),
            MemoryRecord(id=2, text="Alice asked about trail maps", embedding=[1.0], importance=5),
        ]

        def handler(request):
            prompt = json.loads(request.content)["prompt"]
            assert "1. Alice bought hiking boots" in prompt
            return httpx.Response(200, json={"response": "1. Alice enjoys hiking\n2) She plans a trip\n"})

        provider = make_provider(handler)

        assert await provider.synthesize(records, max_insights=3) == ["Alice enjoys hiking", "She plans a trip"]

    @pytest.mark.parametrize("reply,expected", [
        ("8", 8),
        ("I'd say 3 out of 10", 3),
        ("42", 10),
        ("0", 1),
    ])
    def test_parse_importance(self, reply, expected):
        assert OllamaProvider.parse_importance(reply) == expected

    def test_parse_importance_without_number(self):
        with pytest.raises(ExternalCallFailure):
            OllamaProvider.parse_importance("very important")

    def test_parse_insights(self):
        reply = "- first insight\n\n* second insight\n• third\n4. fourth"

        assert OllamaProvider.parse_insights(reply, 3) == ["first insight", "second insight", "third"]
