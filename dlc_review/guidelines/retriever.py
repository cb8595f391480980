"""
Guideline Retriever

Wraps a GuidelineStore with a (top_k, min_similarity) policy and a static
fallback template. retrieve_guidelines() never returns empty text for a
valid business type: a cold or sparse index yields the fallback instead of
an error, so evaluation always has guidance to work from.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from dlc_review import config
from dlc_review.errors import InvalidInput, ModelUnavailable, OperationTimeout
from dlc_review.guidelines.store import GuidelineStore
from dlc_review.logging_utils import structured_log
from dlc_review.timeouts import call_with_timeout

logger = logging.getLogger(__name__)

FALLBACK_GUIDELINES_VERSION = "2024.1"

FALLBACK_GUIDELINES_TEMPLATE = """Carrier Guidelines for {business_type}:
(fallback template v{version})

1. General Requirements for All Business Types:
   - Clear business identification in all messages
   - Explicit opt-in from recipients before sending messages
   - Clear opt-out instructions (STOP) in messages
   - No prohibited content (gambling, adult content, illegal substances)
   - No deceptive marketing practices
   - Compliance with TCPA, CTIA, and carrier requirements

2. Specific Guidelines for {business_type}:
   - Clearly state the purpose of each message
   - Include business name in each message
   - Provide value in each message (information, alerts, confirmations)
   - Respect message frequency expectations
   - Maintain accurate opt-in records
   - Honor opt-out requests immediately

3. Best Practices:
   - Keep messages concise and to the point
   - Send messages during appropriate hours
   - Limit use of abbreviations and slang
   - Provide a way for customers to get more information
   - Test message delivery before full deployment
"""


def canonical_query(business_type: str) -> str:
    return f"carrier guidelines for {business_type}"


def fallback_guidelines(business_type: str) -> str:
    return FALLBACK_GUIDELINES_TEMPLATE.format(
        business_type=business_type,
        version=FALLBACK_GUIDELINES_VERSION,
    )


@dataclass
class RetrievedGuidelines:
    """Guideline text plus how it was obtained."""
    business_type: str
    text: str
    used_fallback: bool
    document_ids: List[str] = field(default_factory=list)
    scores: List[float] = field(default_factory=list)


class GuidelineRetriever:

    def __init__(
        self,
        store: GuidelineStore,
        top_k: int = config.RAG_TOP_K,
        min_similarity: float = config.RAG_MIN_SIMILARITY,
        timeout: Optional[float] = config.STORE_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.top_k = top_k
        self.min_similarity = min_similarity
        self.timeout = timeout

    def _query(self, query: str):
        """Query the store, retrying once on ModelUnavailable."""
        for attempt in (1, 2):
            try:
                return call_with_timeout(
                    lambda: self.store.query(query, self.top_k, self.min_similarity),
                    self.timeout,
                    OperationTimeout,
                    description=f"guideline store query ({self.store.NAME})",
                )
            except ModelUnavailable as e:
                if attempt == 2:
                    raise
                structured_log("WARNING", "store_query_retry", query=query, error=str(e))

    def retrieve(self, business_type: str) -> RetrievedGuidelines:
        """
        Look up guidelines for a business type.

        Raises:
            InvalidInput: If business_type is blank
            OperationTimeout: If the store does not answer within the timeout
            ModelUnavailable: If the store query fails twice in a row
        """
        if business_type is None or not business_type.strip():
            raise InvalidInput("business_type must be non-empty")
        business_type = business_type.strip()

        matches = self._query(canonical_query(business_type))

        if not matches:
            structured_log(
                "WARNING", "guidelines_fallback",
                business_type=business_type,
                fallback_version=FALLBACK_GUIDELINES_VERSION,
            )
            return RetrievedGuidelines(
                business_type=business_type,
                text=fallback_guidelines(business_type),
                used_fallback=True,
            )

        # Highest similarity first
        matches = sorted(matches, key=lambda pair: pair[1], reverse=True)

        parts = [f"Carrier Guidelines for {business_type}:"]
        parts.extend(document.text for document, _ in matches)

        structured_log(
            "INFO", "guidelines_retrieved",
            business_type=business_type,
            matches=len(matches),
            top_score=round(matches[0][1], 4),
        )
        return RetrievedGuidelines(
            business_type=business_type,
            text="\n\n".join(parts) + "\n",
            used_fallback=False,
            document_ids=[document.id for document, _ in matches],
            scores=[score for _, score in matches],
        )

    def retrieve_guidelines(self, business_type: str) -> str:
        return self.retrieve(business_type).text
