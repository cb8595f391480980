"""
Guideline Store

Similarity-searchable collection of carrier guideline documents.

Backends implement GuidelineStore:
- InMemoryGuidelineStore: process-local, cosine similarity over embedder vectors
- PineconeGuidelineStore (pinecone_store.py): hosted index

Scores are cosine similarities clamped to [0, 1]; query() returns matches in
descending score order, truncated to top_k, filtered to score >= min_similarity.
"""

import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from dlc_review.errors import InvalidInput
from dlc_review.llm.base import LanguageModel


@dataclass
class GuidelineDocument:
    """A guideline text chunk with its metadata."""
    id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "metadata": dict(self.metadata)}


def validate_text(text: Optional[str], what: str = "text") -> str:
    if text is None or not text.strip():
        raise InvalidInput(f"{what} must be non-empty")
    return text


def validate_top_k(top_k: int) -> int:
    if top_k <= 0:
        raise InvalidInput(f"top_k must be positive, got {top_k}")
    return top_k


def clamp_score(score: float) -> float:
    return max(0.0, min(1.0, score))


def cosine_similarity(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class GuidelineStore(ABC):
    """Abstract base class for guideline stores."""

    NAME: str = ""

    @abstractmethod
    def index(self, document_id: str, text: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Insert or replace a document.

        Re-indexing an existing id replaces it (last writer wins).

        Raises:
            InvalidInput: If text is empty
        """
        pass

    @abstractmethod
    def query(self, text: str, top_k: int, min_similarity: float) -> List[Tuple[GuidelineDocument, float]]:
        """
        Similarity search.

        Returns:
            (document, score) pairs, score descending, at most top_k,
            every score >= min_similarity

        Raises:
            InvalidInput: If text is empty or top_k <= 0
        """
        pass

    @abstractmethod
    def remove(self, document_id: str) -> bool:
        """Remove a document. Returns False if it did not exist."""
        pass

    @abstractmethod
    def count(self) -> int:
        pass


class InMemoryGuidelineStore(GuidelineStore):
    """
    Process-local store.

    Embeddings are computed on index/query through the injected model. With
    LocalModel only identical text scores 1.0, so this backend is meant for
    tests and offline runs.
    """
    NAME = "memory"

    def __init__(self, embedder: LanguageModel):
        self.embedder = embedder
        self._documents: Dict[str, Tuple[GuidelineDocument, List[float]]] = {}
        self._lock = threading.RLock()

    def index(self, document_id: str, text: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        validate_text(text)
        if not document_id:
            raise InvalidInput("document_id must be non-empty")

        # Embed outside the lock; only the swap is serialised
        vector = self.embedder.embed(text)
        document = GuidelineDocument(id=document_id, text=text, metadata=dict(metadata or {}))
        with self._lock:
            self._documents[document_id] = (document, vector)

    def query(self, text: str, top_k: int, min_similarity: float) -> List[Tuple[GuidelineDocument, float]]:
        validate_text(text, "query text")
        validate_top_k(top_k)

        query_vector = self.embedder.embed(text)
        with self._lock:
            snapshot = list(self._documents.values())

        scored = []
        for document, vector in snapshot:
            score = clamp_score(cosine_similarity(query_vector, vector))
            if score >= min_similarity:
                scored.append((document, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:top_k]

    def remove(self, document_id: str) -> bool:
        with self._lock:
            return self._documents.pop(document_id, None) is not None

    def count(self) -> int:
        with self._lock:
            return len(self._documents)
