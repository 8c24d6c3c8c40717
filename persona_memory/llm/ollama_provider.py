"""
Local Ollama integration for completions, embeddings, importance scoring
and reflection synthesis
"""

import re
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import get_config
from ..core.exceptions import ExternalCallFailure
from ..core.models import MemoryRecord
from ..logging import get_logger
from .base import EmbeddingProvider, LLMProvider

_INTEGER = re.compile(r"-?\d+")
_LIST_MARKER = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")


class OllamaProvider(LLMProvider, EmbeddingProvider):
    """Ollama local LLM provider"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        embedding_model: Optional[str] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        config = get_config().ollama
        self.base_url = (base_url or config.host).rstrip('/')
        self.default_model = default_model or config.default_model
        self.embedding_model = embedding_model or config.embedding_model
        self.temperature = config.temperature if temperature is None else temperature
        self.top_p = config.top_p if top_p is None else top_p
        self._validate_options()

        self.client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else config.timeout_seconds
        )
        self.logger = get_logger(__name__)

    def _validate_options(self):
        if not (0.0 <= self.temperature <= 2.0):
            raise ValueError("temperature must be between 0 and 2.")
        if not (0.0 <= self.top_p <= 1.0):
            raise ValueError("top_p must be between 0 and 1.")

    async def is_available(self) -> bool:
        """Check if Ollama is running and accessible"""
        try:
            response = await self.client.get(f"{self.base_url}/api/tags")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def list_available_models(self) -> List[str]:
        """Get list of available Ollama models"""
        response = await self._request("list_models", "GET", "/api/tags")
        return [model["name"] for model in response.get("models", [])]

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, f"{self.base_url}{path}", json=payload)
        except httpx.HTTPError as e:
            self.logger.error(f"Ollama {operation} request failed: {e}")
            raise ExternalCallFailure(operation, str(e) or type(e).__name__) from e

        if response.status_code != 200:
            self.logger.error(f"Ollama API error: {response.status_code} - {response.text}")
            raise ExternalCallFailure(operation, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ExternalCallFailure(operation, "response was not valid JSON") from e

    def _get_generation_options(self, max_tokens: int) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "num_predict": max_tokens,
        }

    async def complete(self, prompt: str, max_tokens: int) -> str:
        """Generate a completion using Ollama"""
        payload = {
            "model": self.default_model,
            "prompt": prompt,
            "stream": False,
            "options": self._get_generation_options(max_tokens)
        }

        self.logger.debug(f"Requesting Ollama model: {self.default_model}")
        result = await self._request("complete", "POST", "/api/generate", payload)
        return result.get("response", "").strip()

    async def embed(self, text: str) -> List[float]:
        """Embed text with the configured embedding model"""
        payload = {"model": self.embedding_model, "prompt": text}
        result = await self._request("embed", "POST", "/api/embeddings", payload)

        embedding = result.get("embedding")
        if not embedding:
            raise ExternalCallFailure("embed", "response contained no embedding")
        return [float(x) for x in embedding]

    async def score_importance(self, text: str) -> int:
        """Ask the model for a 1-10 poignancy rating"""
        reply = await self.complete(self._build_importance_prompt(text), max_tokens=8)
        return self.parse_importance(reply)

    async def synthesize(self, records: Sequence[MemoryRecord], max_insights: int) -> List[str]:
        """Ask the model for high-level insights drawn from the records"""
        reply = await self.complete(
            self._build_reflection_prompt(records, max_insights),
            max_tokens=64 * max_insights
        )
        return self.parse_insights(reply, max_insights)

    def _build_importance_prompt(self, text: str) -> str:
        return "\n".join([
            "On a scale of 1 to 10, where 1 is purely mundane (e.g., small talk, routine chores)",
            "and 10 is extremely poignant (e.g., a life-changing event, a core belief),",
            "rate the likely importance of the following memory.",
            "",
            f"Memory: {text}",
            "",
            "Answer with a single integer.",
            "Rating:"
        ])

    def _build_reflection_prompt(self, records: Sequence[MemoryRecord], max_insights: int) -> str:
        prompt_parts = ["Statements:"]
        for i, record in enumerate(records, 1):
            prompt_parts.append(f"{i}. {record.text}")

        prompt_parts.extend([
            "",
            f"What {max_insights} high-level insights can you infer from the statements above?",
            "Write exactly one insight per line, with no extra commentary."
        ])
        return "\n".join(prompt_parts)

    @staticmethod
    def parse_importance(reply: str) -> int:
        match = _INTEGER.search(reply)
        if not match:
            raise ExternalCallFailure("score_importance", f"no integer rating in reply {reply!r}")
        return max(1, min(10, int(match.group())))

    @staticmethod
    def parse_insights(reply: str, max_insights: int) -> List[str]:
        insights = []
        for line in reply.splitlines():
            insight = _LIST_MARKER.sub("", line).strip()
            if insight:
                insights.append(insight)
        return insights[:max_insights]

    async def close(self):
        """Clean up HTTP client"""
        await self.client.aclose()
