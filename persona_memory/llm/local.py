"""
In-process adapters that need no model server
"""

import hashlib
import math
from typing import List, Optional

import numpy as np
import tiktoken

from .base import EmbeddingProvider, TokenCounter


class HashEmbeddingProvider(EmbeddingProvider):
    """Deterministic pseudo-embeddings seeded from a digest of the text.

    Identical text always yields the identical unit vector; unrelated texts
    are close to orthogonal. Useful offline and in tests, useless for meaning.
    """

    def __init__(self, dimension: int = 64):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    async def embed(self, text: str) -> List[float]:
        return self.embed_sync(text)

    def embed_sync(self, text: str) -> List[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        rng = np.random.default_rng(int.from_bytes(digest[:8], "little"))
        vector = rng.standard_normal(self.dimension)
        return (vector / np.linalg.norm(vector)).tolist()


class WordTokenCounter(TokenCounter):
    """Rough word-to-token conversion (1 word ~ 1.3 tokens)"""

    def __init__(self, tokens_per_word: float = 1.3):
        if tokens_per_word <= 0:
            raise ValueError("tokens_per_word must be positive")
        self.tokens_per_word = tokens_per_word

    def count_units(self, text: str) -> int:
        words = len(text.split())
        if words == 0:
            return 0
        # round first so float noise (e.g. 13.000000000000002) doesn't add a unit
        return math.ceil(round(words * self.tokens_per_word, 6))


class TiktokenCounter(TokenCounter):
    """Counts BPE tokens with a tiktoken encoding (cl100k_base by default)"""

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        self._encoding: Optional[tiktoken.Encoding] = None

    @property
    def encoding(self) -> tiktoken.Encoding:
        # loading may fetch the BPE ranks on first use
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def count_units(self, text: str) -> int:
        if not text:
            return 0
        # special-token markers in memory text count as ordinary text
        return len(self.encoding.encode(text, disallowed_special=()))
