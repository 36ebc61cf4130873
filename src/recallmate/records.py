"""Memory records and the read-only record access contract.

Records are produced by an ingestion collaborator (clipboard, files,
manual capture) and only ever read here. Components reach them through
the RecordAccess protocol:

- fetch_recent(limit): newest first
- fetch_range(start, end): oldest first, start <= timestamp < end
- fetch_by_substring(text): newest first, case-insensitive match on
  title, body and (optionally) tags
- count()

InMemoryRecordStore is the reference implementation.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from .errors import RecordAccessError, ValidationError
from .memory.embeddings import content_hash
from .timeutil import local_now

logger = logging.getLogger(__name__)


class MemoryCategory(str, Enum):
    """Closed set of record kinds."""

    CLIPBOARD = "clipboard"
    FILE = "file"
    MESSAGE = "message"
    NOTE = "note"
    LINK = "link"
    ADDRESS = "address"
    MANUAL = "manual"

    @classmethod
    def parse(cls, raw: str | None) -> "MemoryCategory":
        """Parse a stored category string; unknown values become MANUAL."""
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.MANUAL

    @property
    def display(self) -> "CategoryDisplay":
        return CATEGORY_DISPLAY[self]

    @property
    def display_name(self) -> str:
        return CATEGORY_DISPLAY[self].name


@dataclass(frozen=True)
class CategoryDisplay:
    """Presentation attributes for one category."""

    name: str
    icon: str
    color: str


CATEGORY_DISPLAY: dict[MemoryCategory, CategoryDisplay] = {
    MemoryCategory.CLIPBOARD: CategoryDisplay("Clipboard", "clipboard", "cyan"),
    MemoryCategory.FILE: CategoryDisplay("File", "file", "orange"),
    MemoryCategory.MESSAGE: CategoryDisplay("Message", "message", "green"),
    MemoryCategory.NOTE: CategoryDisplay("Note", "note", "yellow"),
    MemoryCategory.LINK: CategoryDisplay("Link", "link", "blue"),
    MemoryCategory.ADDRESS: CategoryDisplay("Address", "map-pin", "pink"),
    MemoryCategory.MANUAL: CategoryDisplay("Manual", "pencil", "purple"),
}


def parse_tags(raw: str | Iterable[str] | None) -> tuple[str, ...]:
    """Normalize tags into an ordered tuple without blanks or repeats.

    Accepts the comma-separated storage form ("work, travel") or any
    iterable of strings.
    """
    if raw is None:
        return ()
    parts = raw.split(",") if isinstance(raw, str) else raw
    seen: dict[str, None] = {}
    for part in parts:
        tag = part.strip()
        if tag and tag not in seen:
            seen[tag] = None
    return tuple(seen)


@dataclass(frozen=True)
class MemoryRecord:
    """One captured snippet with metadata."""

    id: str
    title: str
    body: str
    category: MemoryCategory
    timestamp: datetime
    source: str = ""
    file_path: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    is_favorite: bool = False
    content_hash: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("Record identifier must not be empty", field="id")
        if not isinstance(self.category, MemoryCategory):
            object.__setattr__(self, "category", MemoryCategory.parse(self.category))
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, "tags", parse_tags(self.tags))
        if self.timestamp.tzinfo is None:
            # Naive timestamps are local wall-clock time
            object.__setattr__(self, "timestamp", self.timestamp.astimezone())

    @classmethod
    def create(
        cls,
        title: str,
        body: str,
        category: MemoryCategory | str,
        *,
        source: str = "",
        file_path: str | None = None,
        tags: str | Iterable[str] | None = None,
        timestamp: datetime | None = None,
    ) -> "MemoryRecord":
        """Build a new record with a fresh identifier and fingerprint."""
        return cls(
            id=uuid4().hex,
            title=title,
            body=body,
            category=MemoryCategory.parse(category) if isinstance(category, str) else category,
            timestamp=timestamp or local_now(),
            source=source,
            file_path=file_path,
            tags=parse_tags(tags),
            content_hash=content_hash(body),
        )

    @property
    def text(self) -> str:
        """Title and body, the text that entity extraction and embeddings see."""
        return f"{self.title} {self.body}"

    def matches(self, needle: str, *, include_tags: bool = True) -> bool:
        """Case-insensitive substring match on title, body and tags."""
        needle = needle.lower()
        if needle in self.title.lower() or needle in self.body.lower():
            return True
        if include_tags:
            return any(needle in tag.lower() for tag in self.tags)
        return False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "file_path": self.file_path,
            "tags": list(self.tags),
            "is_favorite": self.is_favorite,
            "content_hash": self.content_hash,
        }


class RecordAccess(Protocol):
    """Read-only access to memory records."""

    def fetch_recent(self, limit: int) -> Sequence[MemoryRecord]: ...

    def fetch_range(self, start: datetime, end: datetime) -> Sequence[MemoryRecord]: ...

    def fetch_by_substring(
        self,
        text: str,
        *,
        limit: int | None = None,
        include_tags: bool = True,
    ) -> Sequence[MemoryRecord]: ...

    def count(self) -> int: ...


class InMemoryRecordStore:
    """RecordAccess over a list held in memory.

    Writes go through add(); readers get snapshots, so a concurrent add
    never disturbs an in-flight fetch.
    """

    def __init__(self, records: Iterable[MemoryRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, MemoryRecord] = {}
        for record in records:
            self.add(record)

    def add(self, record: MemoryRecord) -> None:
        with self._lock:
            if record.id in self._records:
                raise ValidationError(f"Duplicate record id {record.id}", field="id")
            self._records[record.id] = record

    def _snapshot(self) -> list[MemoryRecord]:
        with self._lock:
            return list(self._records.values())

    def _newest_first(self, records: list[MemoryRecord]) -> list[MemoryRecord]:
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def fetch_recent(self, limit: int) -> list[MemoryRecord]:
        if limit < 0:
            raise RecordAccessError("limit must be non-negative", operation="fetch_recent")
        return self._newest_first(self._snapshot())[:limit]

    def fetch_range(self, start: datetime, end: datetime) -> list[MemoryRecord]:
        in_range = [r for r in self._snapshot() if start <= r.timestamp < end]
        return sorted(in_range, key=lambda r: r.timestamp)

    def fetch_by_substring(
        self,
        text: str,
        *,
        limit: int | None = None,
        include_tags: bool = True,
    ) -> list[MemoryRecord]:
        hits = [r for r in self._snapshot() if r.matches(text, include_tags=include_tags)]
        hits = self._newest_first(hits)
        return hits if limit is None else hits[:limit]

    def count(self) -> int:
        with self._lock:
            return len(self._records)


async def fetch_records(
    operation: str,
    fetch: Callable[..., Sequence[MemoryRecord]],
    *args: Any,
    **kwargs: Any,
) -> list[MemoryRecord]:
    """Run a blocking record fetch off the event loop.

    Any failure is logged and turned into an empty result; record access
    errors never reach the callers of the public operations.
    """
    try:
        return list(await asyncio.to_thread(fetch, *args, **kwargs))
    except Exception as e:
        logger.warning(
            "Record fetch failed, treating as no results: %s (operation=%s, type=%s)",
            e,
            operation,
            type(e).__name__,
        )
        return []
