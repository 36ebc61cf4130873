from __future__ import annotations

import hashlib
import re
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import Mock

import numpy as np
import pytest

from recallmate.memory.embeddings import EmbeddingService
from recallmate.memory.entities import EntityTagger
from recallmate.records import InMemoryRecordStore, MemoryCategory, MemoryRecord

# Wednesday afternoon; the week (Monday start) began 2026-10-12
NOW = datetime(2026, 10, 14, 15, 30, tzinfo=UTC)

# Surface text -> spaCy label understood by the fake NER pipeline
KNOWN_ENTITIES = {
    "Alice Martin": "PERSON",
    "Alice": "PERSON",
    "Bob": "PERSON",
    "Carol": "PERSON",
    "Paris": "GPE",
    "Berlin": "GPE",
    "Lake Como": "LOC",
    "Acme Corp": "ORG",
    "Initech": "ORG",
    "March": "DATE",
    "X": "PERSON",
}


class FakeNLP:
    """Stand-in for a spaCy pipeline: finds known names as whole words."""

    def __init__(self, known: dict[str, str], max_length: int = 1_000_000) -> None:
        # Longest names first so "Alice Martin" wins over "Alice"
        self._known = sorted(known.items(), key=lambda kv: len(kv[0]), reverse=True)
        self.max_length = max_length
        self.seen_lengths: list[int] = []

    def __call__(self, text: str) -> SimpleNamespace:
        self.seen_lengths.append(len(text))
        if len(text) > self.max_length:
            raise ValueError(
                f"[E088] Text of length {len(text)} exceeds maximum of {self.max_length}"
            )
        spans: list[tuple[int, int, str, str]] = []
        for name, label in self._known:
            for match in re.finditer(rf"\b{re.escape(name)}\b", text):
                start, end = match.span()
                if any(start < s_end and s_start < end for s_start, s_end, _, _ in spans):
                    continue
                spans.append((start, end, match.group(0), label))
        spans.sort()
        ents = [SimpleNamespace(text=surface, label_=label) for _, _, surface, label in spans]
        return SimpleNamespace(ents=ents)


@pytest.fixture(autouse=True)
def _isolated_models(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep tests away from real model downloads.

    Embeddings are disabled and both singletons are reset, so a service
    built without an explicit collaborator reports itself unavailable.
    """
    import recallmate.memory.embeddings as embeddings_mod

    monkeypatch.setenv("RECALL_EMBEDDINGS_ENABLED", "false")
    monkeypatch.setenv("RECALL_NER_MODEL", "recallmate-test-missing-model")
    EmbeddingService._instance = None
    EntityTagger._instance = None
    embeddings_mod._embedding_service = None
    yield
    EmbeddingService._instance = None
    EntityTagger._instance = None
    embeddings_mod._embedding_service = None


@pytest.fixture
def tagger() -> EntityTagger:
    """EntityTagger backed by the fake NER pipeline."""
    EntityTagger._instance = None
    t = EntityTagger()
    t._nlp = FakeNLP(KNOWN_ENTITIES)
    return t


@pytest.fixture
def no_ner_tagger() -> EntityTagger:
    """EntityTagger whose pipeline failed to load."""
    EntityTagger._instance = None
    t = EntityTagger()
    t._load_failed = True
    return t


def bag_of_words(text: str, dim: int = 512) -> np.ndarray:
    """Deterministic embedding: hashed word counts."""
    vec = np.zeros(dim, dtype=np.float32)
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest()[:8], 16) % dim
        vec[bucket] += 1.0
    return vec


@pytest.fixture
def mock_embedding_service() -> Mock:
    """Available embedding service with bag-of-words vectors."""
    mock = Mock(spec=EmbeddingService)
    mock.is_available = True

    mock.embed.side_effect = lambda text: bag_of_words(text).tobytes()
    mock.embed_batch.side_effect = lambda texts: [bag_of_words(t).tobytes() for t in texts]

    def similarity(a: bytes, b: bytes) -> float:
        from recallmate.memory.embeddings import cosine_similarity

        return cosine_similarity(
            np.frombuffer(a, dtype=np.float32), np.frombuffer(b, dtype=np.float32)
        )

    mock.similarity.side_effect = similarity
    return mock


@pytest.fixture
def unavailable_embedding_service() -> Mock:
    """Embedding service without a model (keyword-only mode)."""
    mock = Mock(spec=EmbeddingService)
    mock.is_available = False
    return mock


_counter = {"n": 0}


def _make_record(
    title: str,
    body: str = "",
    *,
    category: MemoryCategory = MemoryCategory.NOTE,
    hours_ago: float = 1.0,
    tags: tuple[str, ...] = (),
    record_id: str | None = None,
    now: datetime = NOW,
) -> MemoryRecord:
    """Build a record timestamped relative to NOW."""
    _counter["n"] += 1
    return MemoryRecord(
        id=record_id or f"rec-{_counter['n']:04d}",
        title=title,
        body=body,
        category=category,
        timestamp=now - timedelta(hours=hours_ago),
        source="test",
        tags=tags,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_record():
    """Factory for records timestamped relative to NOW."""
    return _make_record


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


class FailingStore:
    """RecordAccess whose every read fails."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def fetch_recent(self, limit):
        self.calls.append("fetch_recent")
        raise RuntimeError("database is locked")

    def fetch_range(self, start, end):
        self.calls.append("fetch_range")
        raise RuntimeError("database is locked")

    def fetch_by_substring(self, text, *, limit=None, include_tags=True):
        self.calls.append("fetch_by_substring")
        raise RuntimeError("database is locked")

    def count(self):
        raise RuntimeError("database is locked")


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()
