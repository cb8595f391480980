"""
OpenAI provider.

Chat completions for evaluation and text-embedding-3-small for the
guideline index. Client-side retries are disabled: the evaluator owns the
retry policy (exactly one retry on ModelUnavailable).
"""

import os
from typing import List, Optional

from openai import OpenAI, APITimeoutError, OpenAIError

from dlc_review import config
from dlc_review.errors import ModelTimeout, ModelUnavailable
from dlc_review.llm.base import LanguageModel


class OpenAIModel(LanguageModel):
    NAME = "openai"

    def __init__(
        self,
        model: str = config.OPENAI_CHAT_MODEL,
        embedding_model: str = config.OPENAI_EMBEDDING_MODEL,
        temperature: float = config.MODEL_TEMPERATURE,
        max_tokens: int = config.MODEL_MAX_TOKENS,
        timeout: float = config.MODEL_TIMEOUT_SECONDS,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.embedding_model = embedding_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or OpenAI(
            api_key=os.getenv("OPENAI_API_KEY"),
            timeout=timeout,
            max_retries=0,
        )

    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except APITimeoutError as e:
            raise ModelTimeout(f"OpenAI completion timed out: {e}") from e
        except OpenAIError as e:
            raise ModelUnavailable(f"OpenAI completion failed: {e}") from e

        content = response.choices[0].message.content
        if content is None:
            raise ModelUnavailable("OpenAI returned an empty completion")
        return content

    def embed(self, text: str) -> List[float]:
        try:
            response = self.client.embeddings.create(
                model=self.embedding_model,
                input=text,
            )
        except APITimeoutError as e:
            raise ModelTimeout(f"OpenAI embedding timed out: {e}") from e
        except OpenAIError as e:
            raise ModelUnavailable(f"OpenAI embedding failed: {e}") from e

        return list(response.data[0].embedding)
