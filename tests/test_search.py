"""Tests for services/search.py - hybrid keyword + semantic search.

Unit tests for:
- Recency scoring and result merging
- Keyword-only mode without an embedding model
- Semantic ranking with a mocked embedding service
- Publication and the stale-result guard
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from unittest.mock import Mock

import pytest

from recallmate.records import InMemoryRecordStore, MemoryCategory, MemoryRecord
from recallmate.services.search import SearchEngine, merge_results, recency_score


# =============================================================================
# Helpers
# =============================================================================


class TestRecencyScore:
    def test_now_scores_one(self, now) -> None:
        assert recency_score(now, now) == pytest.approx(1.0)

    def test_linear_decay(self, now) -> None:
        assert recency_score(now - timedelta(hours=84), now) == pytest.approx(0.5)

    def test_older_than_window_scores_zero(self, now) -> None:
        assert recency_score(now - timedelta(days=30), now) == 0.0

    def test_future_clamped(self, now) -> None:
        assert recency_score(now + timedelta(hours=5), now) == 1.0


class TestMergeResults:
    def test_keyword_first_then_unseen_semantic(self, make_record) -> None:
        a, b, c = make_record("a"), make_record("b"), make_record("c")
        assert merge_results([a, b], [b, c, a]) == [a, b, c]

    def test_truncated(self, make_record) -> None:
        records = [make_record(str(i)) for i in range(30)]
        assert len(merge_results(records[:25], records[20:])) == 20

    def test_duplicates_within_keyword_removed(self, make_record) -> None:
        a = make_record("a")
        assert merge_results([a, a], []) == [a]


# =============================================================================
# SearchEngine
# =============================================================================


class TestKeywordOnly:
    @pytest.mark.asyncio
    async def test_empty_query_does_not_fetch(self, unavailable_embedding_service) -> None:
        store = Mock()
        engine = SearchEngine(store, embedding_service=unavailable_embedding_service)

        assert await engine.search("") == []
        assert await engine.search("   ") == []
        store.fetch_by_substring.assert_not_called()
        store.fetch_recent.assert_not_called()
        assert engine.results.latest == []

    @pytest.mark.asyncio
    async def test_invoice_substring_matches_by_recency(
        self, make_record, unavailable_embedding_service
    ) -> None:
        older = make_record("Invoice #41", "Office chairs", hours_ago=48)
        newer = make_record("Payment", "Paid the INVOICE for hosting", hours_ago=2)
        unrelated = make_record("Lunch", "Sandwich shop receipt", hours_ago=1)
        store = InMemoryRecordStore([older, newer, unrelated])
        engine = SearchEngine(store, embedding_service=unavailable_embedding_service)

        results = await engine.search("invoice")

        assert results == [newer, older]
        unavailable_embedding_service.embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_tags_are_searched(self, make_record, unavailable_embedding_service) -> None:
        tagged = make_record("Receipt", tags=("invoice",))
        engine = SearchEngine(
            InMemoryRecordStore([tagged]), embedding_service=unavailable_embedding_service
        )
        assert await engine.search("invoice") == [tagged]

    @pytest.mark.asyncio
    async def test_fetch_failure_gives_empty(
        self, failing_store, unavailable_embedding_service
    ) -> None:
        engine = SearchEngine(failing_store, embedding_service=unavailable_embedding_service)
        assert await engine.search("invoice") == []
        assert engine.results.latest == []

    @pytest.mark.asyncio
    async def test_default_service_is_unavailable_in_tests(self, make_record) -> None:
        # Embeddings are disabled by the test environment
        record = make_record("Invoice")
        engine = SearchEngine(InMemoryRecordStore([record]))
        assert await engine.search("invoice") == [record]


class TestSemantic:
    @pytest.mark.asyncio
    async def test_semantic_hits_follow_keyword_hits(
        self, make_record, mock_embedding_service, now
    ) -> None:
        keyword_hit = make_record("Paris trip", "hotel near the louvre", hours_ago=30)
        related = make_record("Flights", "booked flights for the trip to france", hours_ago=3)
        unrelated = make_record("Groceries", "milk eggs bread", hours_ago=100)
        store = InMemoryRecordStore([keyword_hit, related, unrelated])
        engine = SearchEngine(store, embedding_service=mock_embedding_service, now=lambda: now)

        results = await engine.search("paris trip")

        assert results[0] == keyword_hit
        assert results.index(related) < results.index(unrelated)
        assert len({r.id for r in results}) == len(results)

    @pytest.mark.asyncio
    async def test_result_limit(self, make_record, mock_embedding_service, now) -> None:
        records = [make_record(f"note {i}", "project update", hours_ago=i) for i in range(60)]
        engine = SearchEngine(
            InMemoryRecordStore(records),
            embedding_service=mock_embedding_service,
            now=lambda: now,
        )

        results = await engine.search("project")

        assert len(results) == 20
        assert len({r.id for r in results}) == 20
        # All keyword hits, newest first
        assert results == sorted(results, key=lambda r: r.timestamp, reverse=True)

    def test_recency_breaks_similarity_ties(
        self, make_record, mock_embedding_service, now
    ) -> None:
        old = make_record("Meeting", "budget review", hours_ago=150)
        new = make_record("Meeting", "budget review", hours_ago=1)
        engine = SearchEngine(
            InMemoryRecordStore([old, new]),
            embedding_service=mock_embedding_service,
            now=lambda: now,
        )
        ranked = engine._semantic_rank("quarterly budget", [old, new], now)
        assert ranked == [new, old]

    @pytest.mark.asyncio
    async def test_unembeddable_query_keeps_recency_order(
        self, make_record, mock_embedding_service, now
    ) -> None:
        mock_embedding_service.embed.side_effect = lambda text: None
        records = [make_record(f"r{i}", hours_ago=i + 1) for i in range(3)]
        engine = SearchEngine(
            InMemoryRecordStore(records),
            embedding_service=mock_embedding_service,
            now=lambda: now,
        )

        assert await engine.search("zzz") == records
        mock_embedding_service.embed_batch.assert_not_called()

    @pytest.mark.asyncio
    async def test_naive_timestamp_candidate(self, mock_embedding_service, now) -> None:
        naive = (now - timedelta(hours=2)).astimezone().replace(tzinfo=None)
        record = MemoryRecord(
            id="naive-1",
            title="Flights",
            body="booked flights for the trip to france",
            category=MemoryCategory.NOTE,
            timestamp=naive,
        )
        engine = SearchEngine(
            InMemoryRecordStore([record]),
            embedding_service=mock_embedding_service,
            now=lambda: now,
        )

        assert await engine.search("trip to france next spring") == [record]

    def test_unembeddable_candidates_skipped(
        self, make_record, mock_embedding_service, now
    ) -> None:
        a, b = make_record("a"), make_record("b")
        mock_embedding_service.embed_batch.side_effect = lambda texts: [
            mock_embedding_service.embed(texts[0]),
            None,
        ]
        engine = SearchEngine(
            InMemoryRecordStore([a, b]), embedding_service=mock_embedding_service
        )
        assert engine._semantic_rank("a", [a, b], now) == [a]


class TestPublication:
    @pytest.mark.asyncio
    async def test_results_published(self, make_record, unavailable_embedding_service) -> None:
        record = make_record("Invoice")
        engine = SearchEngine(
            InMemoryRecordStore([record]), embedding_service=unavailable_embedding_service
        )
        published: list = []
        engine.results.subscribe(published.append)

        await engine.search("invoice")

        assert published == [[record]]
        assert engine.is_searching is False

    @pytest.mark.asyncio
    async def test_superseded_search_not_published(
        self, make_record, unavailable_embedding_service
    ) -> None:
        slow = make_record("slow match")
        fast = make_record("fast match")
        inner = InMemoryRecordStore([slow, fast])

        class SlowStore:
            def fetch_by_substring(self, text, *, limit=None, include_tags=True):
                if text == "slow":
                    time.sleep(0.2)
                return inner.fetch_by_substring(text, limit=limit, include_tags=include_tags)

            def fetch_recent(self, limit):
                return inner.fetch_recent(limit)

        engine = SearchEngine(SlowStore(), embedding_service=unavailable_embedding_service)
        published: list = []
        engine.results.subscribe(published.append)

        first, second = await asyncio.gather(engine.search("slow"), engine.search("fast"))

        # Both callers get their own answer, but only the latest request is published
        assert first == [slow]
        assert second == [fast]
        assert published == [[fast]]
        assert engine.results.latest == [fast]
