"""
External model adapters
"""

from .base import EmbeddingProvider, LLMProvider, TokenCounter, guarded_call
from .local import HashEmbeddingProvider, TiktokenCounter, WordTokenCounter
from .ollama_provider import OllamaProvider

__all__ = [
    "EmbeddingProvider",
    "LLMProvider",
    "TokenCounter",
    "guarded_call",
    "HashEmbeddingProvider",
    "WordTokenCounter",
    "TiktokenCounter",
    "OllamaProvider"
]
