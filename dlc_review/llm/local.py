"""
Local fixed-seed provider for tests and offline mode.

Embeddings are derived from a SHA-256 of the text, so identical text always
maps to the identical unit vector (similarity 1.0) and unrelated text lands
near zero. This is NOT a semantic embedding: only exact-text matches are
meaningful.
"""

import hashlib
import math
import random
from typing import Callable, List, Optional

from dlc_review import config
from dlc_review.errors import ModelUnavailable
from dlc_review.llm.base import LanguageModel


def hash_embedding(text: str, dimensions: int = config.EMBEDDING_DIMENSION, seed: int = 42) -> List[float]:
    """Deterministic unit vector for text."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    rng = random.Random(int.from_bytes(digest[:8], "big") ^ seed)

    vector = [rng.uniform(-1.0, 1.0) for _ in range(dimensions)]
    magnitude = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / magnitude for v in vector]


class LocalModel(LanguageModel):
    """
    In-process model.

    Args:
        responder: callable(prompt) -> str used for generate(). Without one,
            generate() raises ModelUnavailable.
        dimensions: embedding size
        seed: mixed into every embedding
    """
    NAME = "local"

    def __init__(
        self,
        responder: Optional[Callable[[str], str]] = None,
        dimensions: int = config.EMBEDDING_DIMENSION,
        seed: int = 42,
    ):
        self.responder = responder
        self.dimensions = dimensions
        self.seed = seed

    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        if self.responder is None:
            raise ModelUnavailable("No local responder configured")
        return self.responder(prompt)

    def embed(self, text: str) -> List[float]:
        return hash_embedding(text, self.dimensions, self.seed)
