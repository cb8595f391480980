from abc import ABC, abstractmethod
from typing import List, Optional


class LanguageModel(ABC):
    """Abstract capability set for text generation and embeddings."""

    NAME: str = ""

    @abstractmethod
    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """
        Generate a completion for prompt.

        Raises:
            ModelUnavailable: provider error (caller retries once)
            ModelTimeout: provider did not answer in time
        """
        pass

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """
        Embed text as a vector.

        Must be deterministic for identical text within a process.
        """
        pass
