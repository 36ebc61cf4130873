"""Multi-step reasoning over memory records.

A fixed, linear pipeline that never goes back:

    Parse -> PeopleSearch -> PlaceSearch -> TimeFilter
          -> SemanticFallback -> RankAndDedup -> Answer

PeopleSearch, PlaceSearch and TimeFilter only run when the question names
people, places or a time phrase; SemanticFallback only runs when nothing
was found by then. Every stage appends steps to an append-only log so a
caller can show progress as it happens. The answer is filled from a
template; no text generation model is involved.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from dateutil.relativedelta import relativedelta

from ..channels import ResultChannel
from ..config import REASONING
from ..memory.entities import EntityTagger, NodeType, extract_entities
from ..records import MemoryRecord, RecordAccess, fetch_records
from ..settings import load_settings
from ..timeutil import format_timestamp, local_now, start_of_day, start_of_week
from .search import SearchEngine

logger = logging.getLogger(__name__)

# Checked in this order; the first phrase contained in the question wins
TIME_HINT_PHRASES: tuple[str, ...] = (
    "yesterday",
    "today",
    "last week",
    "this week",
    "last month",
    "this morning",
    "last night",
    "2 days ago",
    "3 days ago",
    "a week ago",
)

NO_RESULTS_ANSWER = (
    "I couldn't find any memories matching your question. "
    "Try rephrasing or adding more details."
)


# =============================================================================
# Query parsing
# =============================================================================


@dataclass(frozen=True)
class ParsedQuery:
    """Constraints pulled out of a question."""

    people: tuple[str, ...] = ()
    places: tuple[str, ...] = ()
    time_hint: str | None = None

    def describe(self) -> str:
        people = ", ".join(self.people) if self.people else "none"
        places = ", ".join(self.places) if self.places else "none"
        return f"People: {people} | Places: {places} | Time: {self.time_hint or 'any'}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "people": list(self.people),
            "places": list(self.places),
            "time_hint": self.time_hint,
        }


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def extract_time_hint(text: str) -> str | None:
    lower = text.lower()
    for phrase in TIME_HINT_PHRASES:
        if phrase in lower:
            return phrase
    return None


def resolve_time_hint(hint: str, now: datetime, *, week_start: int = 0) -> TimeRange:
    """Turn a time phrase into a concrete range.

    Unrecognized phrases, including "2 days ago", "3 days ago" and
    "a week ago", get the trailing seven days.
    """
    today = start_of_day(now)
    match hint.lower():
        case "yesterday":
            return TimeRange(today - timedelta(days=1), today)
        case "today" | "this morning":
            return TimeRange(today, now)
        case "last week":
            return TimeRange(now - timedelta(days=7), now)
        case "this week":
            return TimeRange(start_of_week(now, week_start), now)
        case "last month":
            return TimeRange(now - relativedelta(months=1), now)
        case "last night":
            return TimeRange(today - timedelta(days=1) + timedelta(hours=18), today)
        case _:
            return TimeRange(now - timedelta(days=7), now)


def parse_query(query: str, tagger: EntityTagger | None = None) -> ParsedQuery:
    """Extract people, places and a time hint from a question."""
    people: list[str] = []
    places: list[str] = []
    for entity in extract_entities(query, tagger=tagger):
        if entity.type is NodeType.PERSON:
            people.append(entity.label)
        elif entity.type is NodeType.PLACE:
            places.append(entity.label)
    return ParsedQuery(
        people=tuple(people),
        places=tuple(places),
        time_hint=extract_time_hint(query),
    )


# =============================================================================
# Step log and outcome
# =============================================================================


class ReasoningStage(str, Enum):
    """Pipeline stages, in execution order."""

    PARSE = "parse"
    PEOPLE_SEARCH = "people_search"
    PLACE_SEARCH = "place_search"
    TIME_FILTER = "time_filter"
    SEMANTIC_FALLBACK = "semantic_fallback"
    RANK_AND_DEDUP = "rank_and_dedup"
    ANSWER = "answer"


PIPELINE: tuple[ReasoningStage, ...] = tuple(ReasoningStage)


@dataclass(frozen=True)
class ReasoningStep:
    """One progress entry. Immutable once logged."""

    stage: ReasoningStage
    title: str
    detail: str
    created_at: datetime = field(default_factory=local_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "stage": self.stage.value,
            "title": self.title,
            "detail": self.detail,
            "created_at": self.created_at.isoformat(),
        }


class StepLog:
    """Append-only, observable list of reasoning steps."""

    def __init__(self) -> None:
        self._steps: list[ReasoningStep] = []
        self._listeners: list[Callable[[ReasoningStep], None]] = []

    def subscribe(self, listener: Callable[[ReasoningStep], None]) -> None:
        self._listeners.append(listener)

    def append(self, stage: ReasoningStage, title: str, detail: str) -> ReasoningStep:
        step = ReasoningStep(stage=stage, title=title, detail=detail)
        self._steps.append(step)
        for listener in list(self._listeners):
            listener(step)
        return step

    @property
    def steps(self) -> tuple[ReasoningStep, ...]:
        return tuple(self._steps)

    def stages(self) -> list[ReasoningStage]:
        return [s.stage for s in self._steps]

    def __len__(self) -> int:
        return len(self._steps)


@dataclass
class ReasoningOutcome:
    """Terminal result of one reasoning run."""

    query: str
    parsed: ParsedQuery
    steps: tuple[ReasoningStep, ...]
    results: list[MemoryRecord]
    answer: str
    published: bool = False

    def to_markdown(self) -> str:
        """Format the step log and answer as markdown."""
        lines = ["## Reasoning\n"]
        for step in self.steps:
            lines.append(f"- **{step.title}**: {step.detail}")
        lines.append("\n## Answer\n")
        lines.append(self.answer)
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "query": self.query,
            "parsed": self.parsed.to_dict(),
            "steps": [s.to_dict() for s in self.steps],
            "results": [r.to_dict() for r in self.results],
            "answer": self.answer,
        }


def compose_answer(results: list[MemoryRecord], parsed: ParsedQuery) -> str:
    """Template the final answer from ranked results."""
    if not results:
        return NO_RESULTS_ANSWER

    top = results[0]
    excerpt = top.body[: REASONING.EXCERPT_CHARS]
    if len(top.body) > REASONING.EXCERPT_CHARS:
        excerpt += "..."

    noun = "memory" if len(results) == 1 else "memories"
    lines = [
        f"Based on {len(results)} related {noun}:",
        f'Top match: "{top.title}" - {excerpt}',
        f"When: {format_timestamp(top.timestamp)}",
    ]
    if parsed.people:
        lines.append(f"Connected to: {', '.join(parsed.people)}")
    return "\n".join(lines)


# =============================================================================
# Pipeline
# =============================================================================


@dataclass
class _Run:
    """Working state of one reasoning invocation."""

    query: str
    now: datetime
    log: StepLog
    parsed: ParsedQuery = field(default_factory=ParsedQuery)
    results: list[MemoryRecord] = field(default_factory=list)


class ReasoningPipeline:
    """Answers questions by decomposing them into entity and time constraints.

    Outcomes are published to self.outcomes; a run that completes after a
    newer one was issued is not published.
    """

    def __init__(
        self,
        records: RecordAccess,
        *,
        search_engine: SearchEngine | None = None,
        tagger: EntityTagger | None = None,
        now: Callable[[], datetime] = local_now,
        week_start: int | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            records: Record access collaborator.
            search_engine: Engine for the semantic fallback (built on records if None).
            tagger: NER tagger (shared singleton if None).
            now: Clock for resolving time phrases.
            week_start: First weekday for "this week" (settings if None).
        """
        self._records = records
        self._search_engine = search_engine or SearchEngine(records, now=now)
        self._tagger = tagger
        self._now = now
        self._week_start = load_settings().week_start if week_start is None else week_start
        self._in_flight = 0
        self.outcomes: ResultChannel[ReasoningOutcome] = ResultChannel("reasoning")

        self._handlers = {
            ReasoningStage.PARSE: self._parse,
            ReasoningStage.PEOPLE_SEARCH: self._people_search,
            ReasoningStage.PLACE_SEARCH: self._place_search,
            ReasoningStage.TIME_FILTER: self._time_filter,
            ReasoningStage.SEMANTIC_FALLBACK: self._semantic_fallback,
            ReasoningStage.RANK_AND_DEDUP: self._rank_and_dedup,
            ReasoningStage.ANSWER: self._answer,
        }

    @property
    def is_reasoning(self) -> bool:
        return self._in_flight > 0

    async def reason(
        self,
        query: str,
        on_step: Callable[[ReasoningStep], None] | None = None,
    ) -> ReasoningOutcome:
        """Run the pipeline to completion.

        Args:
            query: The user's question.
            on_step: Called with each step as it is logged.

        Returns:
            The outcome; its answer is never empty.
        """
        async for event in self.stream(query):
            if isinstance(event, ReasoningOutcome):
                return event
            if on_step is not None:
                on_step(event)
        raise AssertionError("reasoning stream ended without an outcome")

    async def stream(self, query: str) -> AsyncIterator[ReasoningStep | ReasoningOutcome]:
        """Run the pipeline, yielding each step and finally the outcome."""
        generation = self.outcomes.next_generation()
        run = _Run(query=query, now=self._now(), log=StepLog())

        self._in_flight += 1
        try:
            for stage in PIPELINE:
                if not self._should_run(stage, run):
                    logger.debug("Skipping %s stage", stage.value)
                    continue
                async for step in self._handlers[stage](run):
                    yield step
        finally:
            self._in_flight -= 1

        outcome = ReasoningOutcome(
            query=query,
            parsed=run.parsed,
            steps=run.log.steps,
            results=run.results,
            answer=run.log.steps[-1].detail,
        )
        outcome.published = self.outcomes.publish(generation, outcome)
        yield outcome

    def _should_run(self, stage: ReasoningStage, run: _Run) -> bool:
        if stage is ReasoningStage.PEOPLE_SEARCH:
            return bool(run.parsed.people)
        if stage is ReasoningStage.PLACE_SEARCH:
            return bool(run.parsed.places)
        if stage is ReasoningStage.TIME_FILTER:
            return run.parsed.time_hint is not None
        if stage is ReasoningStage.SEMANTIC_FALLBACK:
            return not run.results
        return True

    async def _keyword_search(self, term: str) -> list[MemoryRecord]:
        return await fetch_records(
            "fetch_by_substring",
            self._records.fetch_by_substring,
            term,
            limit=REASONING.PER_TERM_LIMIT,
            include_tags=False,
        )

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def _parse(self, run: _Run) -> AsyncIterator[ReasoningStep]:
        yield run.log.append(
            ReasoningStage.PARSE, "Analyzing question", "Extracting entities, time, and intent..."
        )
        run.parsed = await asyncio.to_thread(parse_query, run.query, self._tagger)
        yield run.log.append(ReasoningStage.PARSE, "Query parsed", run.parsed.describe())

    async def _people_search(self, run: _Run) -> AsyncIterator[ReasoningStep]:
        names = ", ".join(run.parsed.people)
        yield run.log.append(
            ReasoningStage.PEOPLE_SEARCH, "Searching people", f"Looking for mentions of {names}..."
        )
        for person in run.parsed.people:
            run.results.extend(await self._keyword_search(person))
        yield run.log.append(
            ReasoningStage.PEOPLE_SEARCH,
            "People search",
            f"Found {len(run.results)} related memories",
        )

    async def _place_search(self, run: _Run) -> AsyncIterator[ReasoningStep]:
        names = ", ".join(run.parsed.places)
        yield run.log.append(
            ReasoningStage.PLACE_SEARCH, "Searching places", f"Looking for {names}..."
        )
        for place in run.parsed.places:
            run.results.extend(await self._keyword_search(place))
        yield run.log.append(
            ReasoningStage.PLACE_SEARCH,
            "Place search",
            f"Found {len(run.results)} total memories",
        )

    async def _time_filter(self, run: _Run) -> AsyncIterator[ReasoningStep]:
        hint = run.parsed.time_hint
        if hint is None:
            return
        yield run.log.append(
            ReasoningStage.TIME_FILTER, "Filtering by time", f"Narrowing to {hint}..."
        )
        window = resolve_time_hint(hint, run.now, week_start=self._week_start)
        run.results = [r for r in run.results if window.contains(r.timestamp)]
        yield run.log.append(
            ReasoningStage.TIME_FILTER,
            "Time filter",
            f"{len(run.results)} memories in time range",
        )

    async def _semantic_fallback(self, run: _Run) -> AsyncIterator[ReasoningStep]:
        yield run.log.append(
            ReasoningStage.SEMANTIC_FALLBACK,
            "Semantic search",
            "No keyword matches, attempting semantic similarity...",
        )
        run.results = await self._search_engine.search(run.query)
        yield run.log.append(
            ReasoningStage.SEMANTIC_FALLBACK,
            "Semantic results",
            f"Found {len(run.results)} related memories",
        )

    async def _rank_and_dedup(self, run: _Run) -> AsyncIterator[ReasoningStep]:
        yield run.log.append(
            ReasoningStage.RANK_AND_DEDUP,
            "Ranking results",
            "Deduplicating and ranking by recency...",
        )
        unique: dict[str, MemoryRecord] = {}
        for record in run.results:
            unique.setdefault(record.id, record)
        ranked = sorted(unique.values(), key=lambda r: r.timestamp, reverse=True)
        run.results = ranked[: REASONING.MAX_RESULTS]

    async def _answer(self, run: _Run) -> AsyncIterator[ReasoningStep]:
        answer = compose_answer(run.results, run.parsed)
        logger.debug("Answered %r with %d results", run.query[:50], len(run.results))
        yield run.log.append(ReasoningStage.ANSWER, "Answer ready", answer)
