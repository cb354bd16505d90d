"""
Candidate Index
===============

Semantic top-k retrieval over the candidate catalog. Built once at
startup; immutable afterwards, so concurrent requests read it without
locking.
"""

import asyncio
import os
from typing import Optional, Protocol

import numpy as np
from aws_lambda_powertools import Logger

from models import CandidateItem, IndexedCandidate, SearchHit
from utils.embeddings import EMBEDDING_TIMEOUT_SECONDS, normalize_rows

logger = Logger()

# Caps retrieval to bound downstream prompt size
MAX_SEARCH_RESULTS = int(os.environ.get("MAX_SEARCH_RESULTS", "10"))


class Embedder(Protocol):
    async def embed(self, texts: list[str]) -> np.ndarray: ...


class IndexBuildError(RuntimeError):
    """The index could not be built. Fatal at startup."""


class CandidateIndex:
    """
    Holds one normalized embedding per catalog item.

    Use ``CandidateIndex.build`` to create a populated index; a bare
    ``CandidateIndex()`` is empty and every search on it returns [].
    """

    def __init__(
        self,
        entries: tuple[IndexedCandidate, ...] = (),
        embedder: Optional[Embedder] = None,
        timeout_seconds: float = EMBEDDING_TIMEOUT_SECONDS,
    ):
        self._entries = tuple(entries)
        self._embedder = embedder
        self._timeout_seconds = timeout_seconds
        self._by_id = {entry.candidate.id: entry.candidate for entry in self._entries}

        if self._entries:
            matrix = np.array([entry.embedding for entry in self._entries], dtype=np.float32)
        else:
            matrix = np.zeros((0, 0), dtype=np.float32)
        matrix.setflags(write=False)
        self._matrix = matrix

    @classmethod
    async def build(
        cls,
        catalog: list[CandidateItem],
        embedder: Embedder,
        timeout_seconds: float = EMBEDDING_TIMEOUT_SECONDS,
    ) -> "CandidateIndex":
        """
        Embed every catalog item and build the index.

        Raises:
            IndexBuildError: On duplicate ids or if the embedding backend
                is unreachable. Not retried.
        """
        seen = set()
        for item in catalog:
            if item.id in seen:
                raise IndexBuildError(f"Duplicate candidate id in catalog: {item.id}")
            seen.add(item.id)

        if not catalog:
            logger.warning("Building candidate index from an empty catalog")
            return cls(embedder=embedder, timeout_seconds=timeout_seconds)

        logger.info(f"Building candidate index for {len(catalog)} items")
        try:
            vectors = await embedder.embed([item.embedding_text for item in catalog])
        except Exception as e:
            raise IndexBuildError(f"Embedding backend unavailable: {e}") from e

        if len(vectors) != len(catalog):
            raise IndexBuildError(
                f"Embedding backend returned {len(vectors)} vectors for {len(catalog)} items"
            )

        vectors = normalize_rows(np.asarray(vectors, dtype=np.float32))
        entries = tuple(
            IndexedCandidate(candidate=item, embedding=tuple(float(x) for x in vector))
            for item, vector in zip(catalog, vectors)
        )
        logger.info(f"Candidate index ready with {len(entries)} items")
        return cls(entries, embedder=embedder, timeout_seconds=timeout_seconds)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def candidates(self) -> list[CandidateItem]:
        return [entry.candidate for entry in self._entries]

    def get(self, candidate_id: str) -> Optional[CandidateItem]:
        """Look up a candidate by id."""
        return self._by_id.get(candidate_id)

    async def search(self, query: str, k: int = MAX_SEARCH_RESULTS) -> list[SearchHit]:
        """
        Return up to k candidates ordered by descending similarity.

        Ties keep catalog insertion order. An empty index or a blank
        query yields [] without calling the embedding backend.
        """
        limit = min(max(int(k), 0), MAX_SEARCH_RESULTS)
        if not self._entries or limit == 0 or not query or not query.strip():
            return []

        query_vector = await asyncio.wait_for(
            self._embedder.embed([query]),
            timeout=self._timeout_seconds,
        )
        query_vector = normalize_rows(np.asarray(query_vector, dtype=np.float32))[0]

        scores = self._matrix @ query_vector
        order = np.argsort(-scores, kind="stable")[:limit]

        return [
            SearchHit(candidate=self._entries[i].candidate, similarity=float(scores[i]))
            for i in order
        ]
