"""Named-entity extraction shared by the graph builder, reasoning and stories.

extract_entities(text) returns (label, type) pairs:
- people, places and organizations from a spaCy NER pipeline
- URL hosts as topics (first 30 characters of the URL when it has no host)

The spaCy pipeline is loaded lazily by a singleton EntityTagger. When
spaCy or its model is missing, only URL topics are found.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from ..config import GRAPH
from ..settings import load_settings

logger = logging.getLogger(__name__)


class NodeType(str, Enum):
    """Kinds of graph node. All but CATEGORY come from entity extraction."""

    PERSON = "person"
    PLACE = "place"
    ORGANIZATION = "organization"
    TOPIC = "topic"
    CATEGORY = "category"

    @property
    def icon(self) -> str:
        return NODE_TYPE_DISPLAY[self][0]

    @property
    def color(self) -> str:
        return NODE_TYPE_DISPLAY[self][1]


# type -> (icon, color)
NODE_TYPE_DISPLAY: dict[NodeType, tuple[str, str]] = {
    NodeType.PERSON: ("person", "green"),
    NodeType.PLACE: ("map-pin", "pink"),
    NodeType.ORGANIZATION: ("building", "blue"),
    NodeType.TOPIC: ("tag", "orange"),
    NodeType.CATEGORY: ("grid", "purple"),
}

# spaCy label -> node type; other labels (DATE, MONEY, ...) are ignored
SPACY_LABELS: dict[str, NodeType] = {
    "PERSON": NodeType.PERSON,
    "GPE": NodeType.PLACE,
    "LOC": NodeType.PLACE,
    "FAC": NodeType.PLACE,
    "ORG": NodeType.ORGANIZATION,
}

URL_PATTERN = re.compile(r"(?:https?://|www\.)[^\s<>\"']+", re.IGNORECASE)
_URL_TRAILING = ".,;:!?)]}'\""


@dataclass(frozen=True)
class ExtractedEntity:
    """One entity mention found in a text."""

    label: str
    type: NodeType

    @property
    def key(self) -> str:
        """Graph key: the lowercased label."""
        return self.label.lower()


class EntityTagger:
    """Singleton wrapper around a spaCy NER pipeline.

    Thread-safe singleton that lazily loads the pipeline on first use.
    """

    _instance: "EntityTagger | None" = None
    _lock = threading.Lock()

    def __new__(cls) -> "EntityTagger":
        """Ensure singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize the tagger (idempotent)."""
        if getattr(self, "_initialized", False):
            return

        self._nlp: Any = None
        self._model_name = load_settings().ner_model
        self._load_failed = False
        self._nlp_lock = threading.Lock()
        self._initialized = True

    def _ensure_pipeline_loaded(self) -> bool:
        if self._nlp is not None:
            return True
        if self._load_failed:
            return False

        with self._nlp_lock:
            if self._nlp is not None:
                return True

            try:
                import spacy

                logger.info("Loading NER pipeline: %s", self._model_name)
                self._nlp = spacy.load(self._model_name)
                return True
            except ImportError:
                logger.warning(
                    "spaCy not installed; only URL topics will be extracted. "
                    "Install with: pip install spacy"
                )
            except OSError as e:
                logger.warning(
                    "NER model %s unavailable (%s); only URL topics will be extracted. "
                    "Install with: python -m spacy download %s",
                    self._model_name,
                    e,
                    self._model_name,
                )

            self._load_failed = True
            return False

    @property
    def is_available(self) -> bool:
        return self._ensure_pipeline_loaded()

    def tag(self, text: str) -> list[tuple[str, str]]:
        """Run NER over text.

        Returns:
            (surface text, spaCy label) pairs in document order.
        """
        if not text or not self._ensure_pipeline_loaded():
            return []
        limit = min(GRAPH.NER_MAX_CHARS, getattr(self._nlp, "max_length", GRAPH.NER_MAX_CHARS))
        if len(text) > limit:
            logger.debug("Truncating %d chars to %d for NER", len(text), limit)
            text = text[:limit]
        doc = self._nlp(text)
        return [(ent.text, ent.label_) for ent in doc.ents]


def get_entity_tagger() -> EntityTagger:
    return EntityTagger()


def _url_label(url: str) -> str:
    target = url if "://" in url else f"http://{url}"
    try:
        host = urlsplit(target).hostname
    except ValueError:
        host = None
    return host or url[: GRAPH.URL_LABEL_CHARS]


def extract_urls(text: str) -> list[ExtractedEntity]:
    """Find URLs in text and label each by its host."""
    found: list[ExtractedEntity] = []
    for match in URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(_URL_TRAILING)
        if url:
            found.append(ExtractedEntity(_url_label(url), NodeType.TOPIC))
    return found


def extract_entities(text: str, tagger: EntityTagger | None = None) -> list[ExtractedEntity]:
    """Extract named entities and URL topics from text.

    Named entities come first in document order, then URLs. Labels of a
    single character are dropped. No side effects beyond lazy model load.
    """
    tagger = tagger or get_entity_tagger()
    entities: list[ExtractedEntity] = []

    for surface, label in tagger.tag(text):
        node_type = SPACY_LABELS.get(label)
        if node_type is None:
            continue
        value = surface.strip()
        if len(value) <= GRAPH.MIN_LABEL_CHARS:
            continue
        entities.append(ExtractedEntity(value, node_type))

    entities.extend(extract_urls(text))
    return entities
