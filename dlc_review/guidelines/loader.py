"""
Knowledge-base seeding.

Splits guideline texts into chunks and indexes them into a GuidelineStore.
Chunk ids are derived from (source, business_type, chunk_index), so loading
the same source twice replaces the earlier chunks instead of duplicating them.
When a reload yields fewer chunks, the leftover trailing ids are removed.

Directory layout for load_directory():
    retail_guidelines.txt      -> business_type "retail"
    healthcare_guidelines.txt  -> business_type "healthcare"
    rules.txt                  -> compliance rules (no business type)
"""

import hashlib
import logging
from pathlib import Path
from typing import Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from dlc_review.guidelines.store import GuidelineStore

logger = logging.getLogger(__name__)

GUIDELINE_SUFFIX = "_guidelines"
RULES_STEM = "rules"

COMPLIANCE_RULES = """10DLC Compliance Rules:

1. Registration Requirements:
   - Register your brand with the Campaign Registry
   - Register each messaging campaign separately
   - Provide accurate information about your company and use cases
   - Use cases must match actual messaging content

2. Opt-In Requirements:
   - Explicit opt-in required before sending messages
   - Clear disclosure of message frequency and purpose
   - Maintain records of opt-in consent
   - Separate opt-in for each messaging program

3. Message Content Requirements:
   - Include business name in each message
   - Include opt-out instructions in each message
   - Content must match registered use case
   - No prohibited content (e.g., illegal activities, adult content)

4. Opt-Out Handling:
   - Honor all opt-out requests immediately
   - Support standard opt-out keywords (STOP, CANCEL, END, QUIT, UNSUBSCRIBE)
   - Confirm opt-out requests
   - No marketing messages after opt-out
"""


def chunk_id(source: str, business_type: Optional[str], index: int) -> str:
    return hashlib.sha256(
        f"{source}:{business_type or 'general'}:{index}".encode()
    ).hexdigest()[:32]


class GuidelineLoader:

    def __init__(self, store: GuidelineStore, chunk_size: int = 1200, chunk_overlap: int = 200):
        self.store = store
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )

    def load_text(
        self,
        text: str,
        source: str,
        business_type: Optional[str] = None,
        doc_type: str = "carrier_guideline",
    ) -> int:
        """
        Split text and index every chunk.

        Returns:
            Number of chunks indexed (0 for blank text)
        """
        if not text or not text.strip():
            logger.warning(f"Skipping empty guideline source: {source}")
            self._remove_from(source, business_type, 0)
            return 0

        chunks = self.text_splitter.split_text(text)
        for i, chunk in enumerate(chunks):
            self.store.index(
                chunk_id(source, business_type, i),
                chunk,
                {
                    "type": doc_type,
                    "business_type": business_type,
                    "source": source,
                    "chunk_index": i,
                },
            )
        self._remove_from(source, business_type, len(chunks))

        logger.info(f"Indexed {len(chunks)} chunks from {source}")
        return len(chunks)

    def _remove_from(self, source: str, business_type: Optional[str], start: int) -> int:
        """Drop chunks of an earlier load of source numbered start and up."""
        removed = 0
        while self.store.remove(chunk_id(source, business_type, start + removed)):
            removed += 1
        if removed:
            logger.info(f"Removed {removed} stale chunks from {source}")
        return removed

    def load_builtin_rules(self) -> int:
        return self.load_text(COMPLIANCE_RULES, source="system", doc_type="compliance_rules")

    def load_directory(self, directory: str) -> int:
        """Index every .txt file in directory. Returns total chunks indexed."""
        path = Path(directory)
        if not path.is_dir():
            raise FileNotFoundError(f"Guideline directory not found: {directory}")

        total = 0
        for file_path in sorted(path.glob("*.txt")):
            stem = file_path.stem
            text = file_path.read_text(encoding="utf-8")

            if stem == RULES_STEM:
                total += self.load_text(text, source=file_path.name, doc_type="compliance_rules")
                continue

            business_type = stem[:-len(GUIDELINE_SUFFIX)] if stem.endswith(GUIDELINE_SUFFIX) else stem
            total += self.load_text(text, source=file_path.name, business_type=business_type)

        return total
