"""Embedding service for semantic search.

Provides vector embeddings using sentence-transformers for:
- Query embedding
- Record text (title + body) embedding
- Cosine similarity scoring

Uses all-MiniLM-L6-v2 by default (384 dimensions, fast, good quality).
When the model cannot be loaded, or embeddings are disabled in settings,
the service reports itself unavailable and search runs keyword-only.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Sequence
from typing import TYPE_CHECKING

from ..settings import load_settings

if TYPE_CHECKING:
    import numpy as np

logger = logging.getLogger(__name__)

# Singleton instance
_embedding_service: "EmbeddingService | None" = None
_service_lock = threading.Lock()

# Longer texts are truncated before encoding
_MAX_TEXT_CHARS = 10000


def cosine_similarity(a: "Sequence[float] | np.ndarray", b: "Sequence[float] | np.ndarray") -> float:
    """Cosine similarity of two vectors.

    Returns:
        Similarity in [-1, 1]; 0.0 when the lengths differ, a vector is
        empty, or either vector has zero magnitude.
    """
    import numpy as np

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    if vec_a.shape != vec_b.shape or vec_a.size == 0:
        return 0.0

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    sim = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    # Rounding can push parallel vectors a hair past 1
    return max(-1.0, min(1.0, sim))


class EmbeddingService:
    """Singleton embedding service using sentence-transformers.

    Thread-safe singleton that lazily loads the model on first use.

    Embedding Format:
    - Model: all-MiniLM-L6-v2 (default, RECALL_EMBEDDING_MODEL)
    - Dimensions: 384
    - Storage: float32 bytes
    """

    _instance: "EmbeddingService | None" = None
    _lock = threading.Lock()

    def __new__(cls) -> "EmbeddingService":
        """Ensure singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize the embedding service (idempotent)."""
        if getattr(self, "_initialized", False):
            return

        settings = load_settings()
        self._model = None
        self._model_name = settings.embedding_model
        self._enabled = settings.embeddings_enabled
        self._load_failed = False
        self._model_lock = threading.Lock()
        self._initialized = True

    def _ensure_model_loaded(self) -> bool:
        """Lazily load the embedding model.

        Returns:
            True if model is available, False if disabled or loading failed.
        """
        if self._model is not None:
            return True
        if not self._enabled or self._load_failed:
            return False

        with self._model_lock:
            if self._model is not None:
                return True

            try:
                from sentence_transformers import SentenceTransformer

                logger.info("Loading embedding model: %s", self._model_name)
                self._model = SentenceTransformer(self._model_name)
                logger.info("Embedding model loaded successfully")
                return True
            except ImportError:
                logger.warning(
                    "sentence-transformers not installed; search is keyword-only. "
                    "Install with: pip install sentence-transformers"
                )
            except Exception as e:
                logger.error("Failed to load embedding model: %s", e)

            self._load_failed = True
            return False

    @property
    def is_available(self) -> bool:
        """Check if the embedding service is available."""
        return self._ensure_model_loaded()

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._model_name

    def embed(self, text: str) -> bytes | None:
        """Generate embedding for text.

        Args:
            text: Text to embed.

        Returns:
            Embedding as bytes (float32), or None if service unavailable.
        """
        if not self._ensure_model_loaded():
            return None

        import numpy as np

        try:
            embedding = self._model.encode(text[:_MAX_TEXT_CHARS], convert_to_numpy=True)
            return embedding.astype(np.float32).tobytes()
        except Exception as e:
            logger.error(
                "Failed to generate embedding: %s (text_length=%d, text_preview=%s)",
                e,
                len(text),
                text[:50] + "..." if len(text) > 50 else text,
            )
            return None

    def embed_batch(self, texts: list[str]) -> list[bytes | None]:
        """Batch embed multiple texts.

        Args:
            texts: List of texts to embed.

        Returns:
            List of embeddings as bytes, None for failed embeddings.
        """
        if not texts:
            return []

        if not self._ensure_model_loaded():
            return [None] * len(texts)

        import numpy as np

        try:
            truncated = [t[:_MAX_TEXT_CHARS] for t in texts]
            embeddings = self._model.encode(truncated, convert_to_numpy=True)
            return [emb.astype(np.float32).tobytes() for emb in embeddings]
        except Exception as e:
            logger.error(
                "Failed to generate batch embeddings: %s (batch_size=%d)",
                e,
                len(texts),
            )
            return [None] * len(texts)

    def similarity(self, a: bytes, b: bytes) -> float:
        """Compute cosine similarity between two embeddings.

        Args:
            a: First embedding as bytes.
            b: Second embedding as bytes.

        Returns:
            Cosine similarity (-1 to 1), 0 if invalid.
        """
        import numpy as np

        return cosine_similarity(
            np.frombuffer(a, dtype=np.float32),
            np.frombuffer(b, dtype=np.float32),
        )


def get_embedding_service() -> EmbeddingService:
    """Get the singleton embedding service instance.

    Returns:
        The global EmbeddingService instance.
    """
    global _embedding_service
    if _embedding_service is None:
        with _service_lock:
            if _embedding_service is None:
                _embedding_service = EmbeddingService()
    return _embedding_service


def content_hash(text: str) -> str:
    """Fingerprint text content for de-duplication.

    Args:
        text: Text content to hash.

    Returns:
        SHA-256 hash prefix (16 characters).
    """
    normalized = text.lower().strip()
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]
