"""Hybrid keyword + semantic search over memory records.

Two passes, merged:
1. Keyword: case-insensitive substring match on title, body and tags,
   newest first (up to 50)
2. Semantic: embed the query and the 200 most recent records, score each
   0.7 * cosine + 0.3 * recency, keep the top 20

Keyword hits come first in their original order, then semantic hits not
already emitted; at most 20 records in total. Without an embedding model
the semantic pass is replaced by the keyword list itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime

from ..channels import ResultChannel
from ..config import SEARCH
from ..memory.embeddings import EmbeddingService, get_embedding_service
from ..records import MemoryRecord, RecordAccess, fetch_records
from ..timeutil import hours_between, local_now

logger = logging.getLogger(__name__)


def recency_score(
    timestamp: datetime,
    now: datetime,
    window_hours: float = SEARCH.RECENCY_WINDOW_HOURS,
) -> float:
    """Linear decay from 1 (now) to 0 (window_hours old or older)."""
    age_hours = hours_between(timestamp, now)
    return max(0.0, min(1.0, 1.0 - age_hours / window_hours))


def merge_results(
    keyword: Iterable[MemoryRecord],
    semantic: Iterable[MemoryRecord],
    limit: int = SEARCH.MAX_RESULTS,
) -> list[MemoryRecord]:
    """Keyword results first, then unseen semantic results, truncated."""
    seen: set[str] = set()
    merged: list[MemoryRecord] = []
    for record in [*keyword, *semantic]:
        if record.id in seen:
            continue
        seen.add(record.id)
        merged.append(record)
    return merged[:limit]


class SearchEngine:
    """Combined keyword + semantic search.

    Every completed search is published to self.results; a search that
    finishes after a newer one was issued is not published.
    """

    def __init__(
        self,
        records: RecordAccess,
        *,
        embedding_service: EmbeddingService | None = None,
        now: Callable[[], datetime] = local_now,
    ) -> None:
        """Initialize the engine.

        Args:
            records: Record access collaborator.
            embedding_service: Optional embedding service (uses global if None).
            now: Clock for recency scoring.
        """
        self._records = records
        self._embedding_service = embedding_service or get_embedding_service()
        self._now = now
        self._in_flight = 0
        self.results: ResultChannel[list[MemoryRecord]] = ResultChannel("search")

    @property
    def is_searching(self) -> bool:
        return self._in_flight > 0

    async def search(self, query: str) -> list[MemoryRecord]:
        """Search records for a free-text query.

        Args:
            query: The user's query.

        Returns:
            Up to 20 records, no duplicate identifiers.
        """
        generation = self.results.next_generation()

        if not query.strip():
            self.results.publish(generation, [])
            return []

        self._in_flight += 1
        try:
            keyword = await fetch_records(
                "fetch_by_substring",
                self._records.fetch_by_substring,
                query,
                limit=SEARCH.KEYWORD_LIMIT,
            )

            available = await asyncio.to_thread(lambda: self._embedding_service.is_available)
            if available:
                candidates = await fetch_records(
                    "fetch_recent", self._records.fetch_recent, SEARCH.CANDIDATE_LIMIT
                )
                ranked = await asyncio.to_thread(
                    self._semantic_rank, query, candidates, self._now()
                )
            else:
                ranked = keyword

            merged = merge_results(keyword, ranked)
        finally:
            self._in_flight -= 1

        logger.debug(
            "Search %r: %d keyword, %d semantic, %d merged (semantic=%s)",
            query[:50],
            len(keyword),
            len(ranked),
            len(merged),
            available,
        )
        self.results.publish(generation, merged)
        return merged

    def _semantic_rank(
        self,
        query: str,
        candidates: Sequence[MemoryRecord],
        now: datetime,
    ) -> list[MemoryRecord]:
        """Score candidates by similarity and recency, best first."""
        query_embedding = self._embedding_service.embed(query)
        if query_embedding is None:
            # Unscored: keep recency order
            return list(candidates[: SEARCH.SEMANTIC_TOP_K])

        embeddings = self._embedding_service.embed_batch([c.text for c in candidates])

        scored: list[tuple[MemoryRecord, float]] = []
        for record, embedding in zip(candidates, embeddings):
            if embedding is None:
                continue
            similarity = self._embedding_service.similarity(query_embedding, embedding)
            score = (
                SEARCH.SIMILARITY_WEIGHT * similarity
                + SEARCH.RECENCY_WEIGHT * recency_score(record.timestamp, now)
            )
            scored.append((record, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [record for record, _ in scored[: SEARCH.SEMANTIC_TOP_K]]
