"""Centralized tuning constants for the recall core.

Single source of truth for:
- Search limits and score weights
- Graph build limits
- Layout simulation parameters
- Reasoning and story thresholds

Count limits can be overridden via environment variables where noted.
Overrides have hard minimums so a bad value cannot disable a stage.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


# =============================================================================
# Helper functions
# =============================================================================


def _env_int(name: str, default: int, min_val: int | None = None) -> int:
    """Get integer from environment with optional minimum enforcement."""
    val = int(os.environ.get(name, str(default)))
    if min_val is not None and val < min_val:
        return min_val
    return val


def _env_float(name: str, default: float, min_val: float | None = None) -> float:
    """Get float from environment with optional minimum enforcement."""
    val = float(os.environ.get(name, str(default)))
    if min_val is not None and val < min_val:
        return min_val
    return val


# =============================================================================
# Search
# =============================================================================


@dataclass(frozen=True)
class SearchLimits:
    """Hybrid keyword + semantic search limits."""

    KEYWORD_LIMIT: int = _env_int("RECALL_SEARCH_KEYWORD_LIMIT", 50, min_val=1)
    CANDIDATE_LIMIT: int = _env_int("RECALL_SEARCH_CANDIDATE_LIMIT", 200, min_val=1)
    SEMANTIC_TOP_K: int = 20
    MAX_RESULTS: int = 20

    # final = SIMILARITY_WEIGHT * cosine + RECENCY_WEIGHT * recency
    SIMILARITY_WEIGHT: float = 0.7
    RECENCY_WEIGHT: float = 0.3

    # Recency decays linearly to zero over one week
    RECENCY_WINDOW_HOURS: float = 168.0


SEARCH = SearchLimits()


# =============================================================================
# Graph
# =============================================================================


@dataclass(frozen=True)
class GraphLimits:
    """Entity graph build limits."""

    RECENT_RECORDS: int = _env_int("RECALL_GRAPH_RECENT_RECORDS", 200, min_val=1)
    MAX_NODES: int = _env_int("RECALL_GRAPH_MAX_NODES", 40, min_val=1)

    # Label used for a URL without a host
    URL_LABEL_CHARS: int = 30

    # Entity labels must be longer than this
    MIN_LABEL_CHARS: int = 1

    # Longer texts are truncated before NER (spaCy refuses texts over nlp.max_length)
    NER_MAX_CHARS: int = _env_int("RECALL_NER_MAX_CHARS", 100_000, min_val=1)


GRAPH = GraphLimits()


@dataclass(frozen=True)
class LayoutParams:
    """Force-directed layout parameters.

    The simulation is cosmetic: it ticks at a fixed rate for a fixed
    wall-clock budget and then stops, converged or not.
    """

    TICK_INTERVAL: float = 1.0 / 30.0
    DURATION: float = _env_float("RECALL_LAYOUT_DURATION", 5.0, min_val=0.0)

    DAMPING: float = 0.85
    REPULSION: float = 3000.0
    ATTRACTION: float = 0.005
    CENTER_GRAVITY: float = 0.01

    # Nodes stay this far inside the canvas edges
    MARGIN: float = 30.0
    # Initial ring radius as a fraction of min(width, height)
    RING_RATIO: float = 0.3
    JITTER: float = 20.0

    CANVAS_WIDTH: float = 400.0
    CANVAS_HEIGHT: float = 700.0


LAYOUT = LayoutParams()


# =============================================================================
# Reasoning
# =============================================================================


@dataclass(frozen=True)
class ReasoningLimits:
    """Multi-step reasoning limits."""

    PER_TERM_LIMIT: int = _env_int("RECALL_REASONING_TERM_LIMIT", 20, min_val=1)
    MAX_RESULTS: int = 10
    EXCERPT_CHARS: int = 80


REASONING = ReasoningLimits()


# =============================================================================
# Stories
# =============================================================================


@dataclass(frozen=True)
class StoryLimits:
    """Narrative digest thresholds."""

    TOP_CATEGORIES: int = 3
    TOP_ENTITIES: int = 5
    NAMED_IN_NARRATIVE: int = 3

    # "Yesterday" opening says busy above this count, productive otherwise
    BUSY_THRESHOLD: int = 10
    # Closing clause buckets
    HIGHLY_ACTIVE_THRESHOLD: int = 15
    STEADY_THRESHOLD: int = 5

    TRAILING_DAYS: int = 30


STORIES = StoryLimits()
