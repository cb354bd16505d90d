"""
Embedding Client
================

Async OpenAI (or Azure OpenAI) embeddings for the candidate index.
Vectors come back L2-normalized so cosine similarity is a dot product.
"""

import os
from typing import Optional

import numpy as np
import openai
from aws_lambda_powertools import Logger

from .secrets import get_secret

logger = Logger()

EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_TIMEOUT_SECONDS = float(os.environ.get("EMBEDDING_TIMEOUT_SECONDS", "10"))
AZURE_API_VERSION = os.environ.get("AZURE_OPENAI_API_VERSION", "2024-08-01-preview")
BATCH_SIZE = 128


def normalize_rows(vectors: np.ndarray) -> np.ndarray:
    """L2-normalize each row; zero rows stay zero."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True) + 1e-12
    return vectors / norms


class EmbeddingClient:
    """Embeds free text through the OpenAI embeddings API."""

    def __init__(self, client: Optional[openai.AsyncOpenAI] = None, model: str = EMBEDDING_MODEL):
        self.model = model
        self._client = client

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = _create_openai_client()
        return self._client

    async def embed(self, texts: list[str]) -> np.ndarray:
        """
        Embed texts in batches.

        Returns:
            float32 array of shape (len(texts), dim), rows normalized

        Raises:
            openai.OpenAIError: If the embedding backend fails
        """
        if not texts:
            return np.zeros((0, 0), dtype=np.float32)

        batches = []
        for start in range(0, len(texts), BATCH_SIZE):
            batch = texts[start:start + BATCH_SIZE]
            response = await self.client.embeddings.create(model=self.model, input=batch)
            batches.append(np.array([d.embedding for d in response.data], dtype=np.float32))

        logger.debug(f"Embedded {len(texts)} texts with {self.model}")
        return normalize_rows(np.vstack(batches))


def _create_openai_client() -> openai.AsyncOpenAI:
    """Create the embeddings client, switching to Azure when an endpoint is configured."""
    azure_endpoint = os.environ.get("AZURE_OPENAI_ENDPOINT")
    if azure_endpoint:
        logger.info(f"Using Azure OpenAI embeddings at {azure_endpoint}")
        return openai.AsyncAzureOpenAI(
            api_key=get_secret("AZURE_OPENAI_API_KEY"),
            azure_endpoint=azure_endpoint,
            api_version=AZURE_API_VERSION,
            timeout=EMBEDDING_TIMEOUT_SECONDS,
            max_retries=0,
        )
    return openai.AsyncOpenAI(
        api_key=get_secret("OPENAI_API_KEY"),
        timeout=EMBEDDING_TIMEOUT_SECONDS,
        max_retries=0,
    )
