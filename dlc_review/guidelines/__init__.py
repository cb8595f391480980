from dlc_review import config
from dlc_review.guidelines.store import GuidelineDocument, GuidelineStore, InMemoryGuidelineStore
from dlc_review.guidelines.retriever import (
    FALLBACK_GUIDELINES_VERSION,
    GuidelineRetriever,
    RetrievedGuidelines,
)
from dlc_review.guidelines.loader import GuidelineLoader


def create_guideline_store(embedder, backend: str = None) -> GuidelineStore:
    """Build the configured store backend ("memory" or "pinecone")."""
    backend = (backend or config.GUIDELINE_STORE).lower()
    if backend == InMemoryGuidelineStore.NAME:
        return InMemoryGuidelineStore(embedder)
    if backend == "pinecone":
        from dlc_review.guidelines.pinecone_store import PineconeGuidelineStore
        return PineconeGuidelineStore(embedder)
    raise ValueError(f"Unknown guideline store backend: {backend}")


__all__ = [
    'FALLBACK_GUIDELINES_VERSION',
    'GuidelineDocument',
    'GuidelineLoader',
    'GuidelineRetriever',
    'GuidelineStore',
    'InMemoryGuidelineStore',
    'RetrievedGuidelines',
    'create_guideline_store',
]
