"""Entity, embedding and graph primitives.

- Vector embeddings and cosine similarity for semantic search
- Named-entity extraction shared by the graph, reasoning and stories
- Co-occurrence graph building (recallmate.memory.graph)
- Force-directed layout (recallmate.memory.layout)

The graph modules depend on recallmate.records and are imported from
their own modules rather than re-exported here.
"""

from __future__ import annotations

from .embeddings import EmbeddingService, content_hash, cosine_similarity, get_embedding_service
from .entities import (
    EntityTagger,
    ExtractedEntity,
    NodeType,
    extract_entities,
    get_entity_tagger,
)

__all__ = [
    # Embeddings
    "EmbeddingService",
    "get_embedding_service",
    "cosine_similarity",
    "content_hash",
    # Entities
    "EntityTagger",
    "get_entity_tagger",
    "ExtractedEntity",
    "NodeType",
    "extract_entities",
]
