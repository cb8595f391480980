"""
Pinecone-backed Guideline Store.

Guideline chunks are upserted with their text in metadata so a query can be
answered without a second lookup. The index uses the cosine metric; scores
are clamped to [0, 1] to match the in-memory backend.
"""

import os
from typing import Any, Dict, List, Optional, Tuple

from pinecone import Pinecone as PineconeClient

from dlc_review import config
from dlc_review.errors import InvalidInput
from dlc_review.guidelines.store import (
    GuidelineDocument,
    GuidelineStore,
    clamp_score,
    validate_text,
    validate_top_k,
)
from dlc_review.llm.base import LanguageModel


class PineconeGuidelineStore(GuidelineStore):
    NAME = "pinecone"

    def __init__(
        self,
        embedder: LanguageModel,
        index=None,
        index_name: str = config.PINECONE_GUIDELINE_INDEX,
        dimension: int = config.EMBEDDING_DIMENSION,
    ):
        """
        Args:
            embedder: model used for document and query embeddings
            index: an existing pinecone Index (injected in tests); created from
                PINECONE_API_KEY when omitted
        """
        self.embedder = embedder
        self.index_name = index_name
        self.dimension = dimension
        self.pc = None
        self._index = index

    @property
    def pinecone_index(self):
        if self._index is None:
            self._ensure_index()
        return self._index

    def _ensure_index(self):
        """Create the index on first use if it does not exist."""
        self.pc = PineconeClient(api_key=os.getenv("PINECONE_API_KEY"))
        existing = [idx.name for idx in self.pc.list_indexes()]
        if self.index_name not in existing:
            self.pc.create_index(
                name=self.index_name,
                dimension=self.dimension,
                metric="cosine",
                spec={"serverless": {"cloud": "aws", "region": "us-east-1"}}
            )
        self._index = self.pc.Index(self.index_name)

    def index(self, document_id: str, text: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        validate_text(text)
        if not document_id:
            raise InvalidInput("document_id must be non-empty")

        # Pinecone metadata rejects None values
        clean_metadata = {k: v for k, v in (metadata or {}).items() if v is not None}
        self.pinecone_index.upsert(vectors=[{
            "id": document_id,
            "values": self.embedder.embed(text),
            "metadata": {**clean_metadata, "text": text},
        }])

    def query(self, text: str, top_k: int, min_similarity: float) -> List[Tuple[GuidelineDocument, float]]:
        validate_text(text, "query text")
        validate_top_k(top_k)

        results = self.pinecone_index.query(
            vector=self.embedder.embed(text),
            top_k=top_k,
            include_metadata=True,
        )

        matches = []
        for match in results.matches:
            score = clamp_score(match.score)
            if score < min_similarity:
                continue
            metadata = dict(match.metadata or {})
            document_text = metadata.pop("text", "")
            matches.append((GuidelineDocument(id=match.id, text=document_text, metadata=metadata), score))

        matches.sort(key=lambda pair: pair[1], reverse=True)
        return matches[:top_k]

    def remove(self, document_id: str) -> bool:
        fetched = self.pinecone_index.fetch(ids=[document_id])
        if document_id not in (fetched.vectors or {}):
            return False
        self.pinecone_index.delete(ids=[document_id])
        return True

    def count(self) -> int:
        stats = self.pinecone_index.describe_index_stats()
        return stats.total_vector_count
