"""
Model providers.

The pipeline depends on a capability set, not on a vendor:
    generate(prompt, system=None) -> str
    embed(text) -> List[float]

Usage:
    from dlc_review.llm import OpenAIModel, LocalModel

    model = OpenAIModel()                         # production
    model = LocalModel(responder=lambda p: "{}")  # tests / offline
"""

from dlc_review.llm.base import LanguageModel
from dlc_review.llm.local import LocalModel, hash_embedding
from dlc_review.llm.openai_provider import OpenAIModel

__all__ = [
    'LanguageModel',
    'LocalModel',
    'OpenAIModel',
    'hash_embedding',
]
