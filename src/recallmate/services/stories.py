"""Narrative digests over fixed time windows.

Up to three stories per run, each only when its window has records:
- Yesterday: the previous calendar day
- This Week: start of the current week through now
- Last 30 Days: the trailing thirty days through now

Each story carries templated prose plus statistics (top categories, most
mentioned people and places, file/clipboard/link counts). Stories are
rebuilt from scratch on every run.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from ..channels import ResultChannel
from ..config import STORIES
from ..memory.entities import EntityTagger, NodeType, extract_entities
from ..records import MemoryCategory, MemoryRecord, RecordAccess, fetch_records
from ..settings import load_settings
from ..timeutil import format_date, local_now, start_of_day, start_of_week

logger = logging.getLogger(__name__)

YESTERDAY = "Yesterday"
THIS_WEEK = "This Week"
LAST_30_DAYS = "Last 30 Days"


@dataclass(frozen=True)
class StoryWindow:
    """A titled time window with its presentation."""

    title: str
    subtitle: str
    icon: str
    gradient: tuple[str, str]
    start: datetime
    end: datetime


@dataclass(frozen=True)
class StoryStats:
    """Counts behind a story."""

    total: int
    categories: tuple[tuple[str, int], ...] = ()
    top_entities: tuple[tuple[str, int], ...] = ()
    files_saved: int = 0
    clipboard_copies: int = 0
    links_visited: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "categories": [{"name": n, "count": c} for n, c in self.categories],
            "top_entities": [{"name": n, "mentions": c} for n, c in self.top_entities],
            "files_saved": self.files_saved,
            "clipboard_copies": self.clipboard_copies,
            "links_visited": self.links_visited,
        }


@dataclass(frozen=True)
class LifeStory:
    """A narrative digest of one window."""

    title: str
    subtitle: str
    icon: str
    narrative: str
    stats: StoryStats
    gradient: tuple[str, str]
    memory_count: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "title": self.title,
            "subtitle": self.subtitle,
            "icon": self.icon,
            "narrative": self.narrative,
            "stats": self.stats.to_dict(),
            "gradient": list(self.gradient),
            "memory_count": self.memory_count,
        }


def story_windows(now: datetime, *, week_start: int = 0) -> list[StoryWindow]:
    """The three story windows, in presentation order."""
    today = start_of_day(now)
    yesterday = today - timedelta(days=1)
    week = start_of_week(now, week_start)
    return [
        StoryWindow(
            title=YESTERDAY,
            subtitle=format_date(yesterday),
            icon="sun",
            gradient=("#667eea", "#764ba2"),
            start=yesterday,
            end=today,
        ),
        StoryWindow(
            title=THIS_WEEK,
            subtitle=f"{format_date(week)} - Today",
            icon="calendar",
            gradient=("#f093fb", "#f5576c"),
            start=week,
            end=now,
        ),
        StoryWindow(
            title=LAST_30_DAYS,
            subtitle="Monthly Highlights",
            icon="chart-bar",
            gradient=("#4facfe", "#00f2fe"),
            start=now - timedelta(days=STORIES.TRAILING_DAYS),
            end=now,
        ),
    ]


def count_mentions(
    records: Sequence[MemoryRecord],
    tagger: EntityTagger | None = None,
) -> Counter[str]:
    """Count people and place mentions across records, keyed by label."""
    mentions: Counter[str] = Counter()
    for record in records:
        for entity in extract_entities(record.text, tagger=tagger):
            if entity.type in (NodeType.PERSON, NodeType.PLACE):
                mentions[entity.label] += 1
    return mentions


def compose_narrative(
    title: str,
    count: int,
    categories: Sequence[str],
    entities: Sequence[str],
) -> str:
    """Assemble the story prose from ordered clauses."""
    parts: list[str] = []

    if title == YESTERDAY:
        mood = "busy" if count > STORIES.BUSY_THRESHOLD else "productive"
        parts.append(f"Yesterday was a {mood} day with {count} moments captured.")
    elif title == THIS_WEEK:
        parts.append(
            f"This week you've been active with {count} memories recorded across your devices."
        )
    else:
        parts.append(f"Over the past 30 days, you've accumulated {count} memories.")

    if categories:
        focus = ", ".join(categories[: STORIES.TOP_CATEGORIES])
        parts.append(f"Your activity focused on {focus}.")

    # Capitalized labels are taken to be proper nouns
    named = [e for e in entities if e[:1].isupper()][: STORIES.NAMED_IN_NARRATIVE]
    if named:
        parts.append(f"Key people: {', '.join(named)}.")

    if count > STORIES.HIGHLY_ACTIVE_THRESHOLD:
        parts.append("A highly active period, your knowledge base is growing fast!")
    elif count > STORIES.STEADY_THRESHOLD:
        parts.append("Steady progress in building your personal knowledge graph.")
    else:
        parts.append("Keep capturing to build a richer memory timeline.")

    return " ".join(parts)


def build_story(
    window: StoryWindow,
    records: Sequence[MemoryRecord],
    tagger: EntityTagger | None = None,
) -> LifeStory:
    """Build the story for one window's records."""
    category_counts: Counter[str] = Counter(r.category.display_name for r in records)
    top_categories = category_counts.most_common(STORIES.TOP_CATEGORIES)
    top_entities = count_mentions(records, tagger).most_common(STORIES.TOP_ENTITIES)

    narrative = compose_narrative(
        window.title,
        len(records),
        [name for name, _ in top_categories],
        [name for name, _ in top_entities],
    )

    stats = StoryStats(
        total=len(records),
        categories=tuple(top_categories),
        top_entities=tuple(top_entities),
        files_saved=category_counts[MemoryCategory.FILE.display_name],
        clipboard_copies=category_counts[MemoryCategory.CLIPBOARD.display_name],
        links_visited=category_counts[MemoryCategory.LINK.display_name],
    )

    return LifeStory(
        title=window.title,
        subtitle=window.subtitle,
        icon=window.icon,
        narrative=narrative,
        stats=stats,
        gradient=window.gradient,
        memory_count=len(records),
    )


class StoryGenerator:
    """Generates the Yesterday / This Week / Last 30 Days digests."""

    def __init__(
        self,
        records: RecordAccess,
        *,
        tagger: EntityTagger | None = None,
        now: Callable[[], datetime] = local_now,
        week_start: int | None = None,
    ) -> None:
        self._records = records
        self._tagger = tagger
        self._now = now
        self._week_start = load_settings().week_start if week_start is None else week_start
        self.stories: ResultChannel[list[LifeStory]] = ResultChannel("stories")

    async def generate_stories(self) -> list[LifeStory]:
        """Build and publish the stories for non-empty windows."""
        generation = self.stories.next_generation()
        now = self._now()

        generated: list[LifeStory] = []
        for window in story_windows(now, week_start=self._week_start):
            records = await fetch_records(
                "fetch_range", self._records.fetch_range, window.start, window.end
            )
            if not records:
                logger.debug("No records for %s story", window.title)
                continue
            story = await asyncio.to_thread(build_story, window, records, self._tagger)
            generated.append(story)

        self.stories.publish(generation, generated)
        return generated
