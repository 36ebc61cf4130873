"""Query-facing services: hybrid search, multi-step reasoning, life stories."""

from __future__ import annotations

from .reasoning import (
    ParsedQuery,
    ReasoningOutcome,
    ReasoningPipeline,
    ReasoningStage,
    ReasoningStep,
    TimeRange,
    extract_time_hint,
    parse_query,
    resolve_time_hint,
)
from .search import SearchEngine, merge_results, recency_score
from .stories import LifeStory, StoryGenerator, StoryStats

__all__ = [
    # Search
    "SearchEngine",
    "merge_results",
    "recency_score",
    # Reasoning
    "ReasoningPipeline",
    "ReasoningOutcome",
    "ReasoningStage",
    "ReasoningStep",
    "ParsedQuery",
    "TimeRange",
    "extract_time_hint",
    "parse_query",
    "resolve_time_hint",
    # Stories
    "StoryGenerator",
    "LifeStory",
    "StoryStats",
]
