from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationError


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _data_dir() -> Path:
    raw = os.environ.get("RECALL_DATA_DIR")
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".recallmate"


_WEEKDAYS = {"monday": 0, "sunday": 6}


def _week_start() -> int:
    raw = os.environ.get("RECALL_WEEK_START", "monday").strip().lower()
    if raw not in _WEEKDAYS:
        raise ConfigurationError(
            f"RECALL_WEEK_START must be one of {sorted(_WEEKDAYS)}",
            context={"value": raw},
        )
    return _WEEKDAYS[raw]


@dataclass(frozen=True)
class Settings:
    """Static settings for the recall core.

    Everything runs locally; model names are resolved by the libraries
    that load them (sentence-transformers, spaCy).
    """

    data_dir: Path = field(default_factory=_data_dir)
    log_level: str = field(default_factory=lambda: os.environ.get("RECALL_LOG_LEVEL", "INFO"))
    log_max_bytes: int = field(
        default_factory=lambda: int(os.environ.get("RECALL_LOG_MAX_BYTES", str(1_000_000)))
    )
    log_backup_count: int = field(
        default_factory=lambda: int(os.environ.get("RECALL_LOG_BACKUP_COUNT", "3"))
    )

    # Semantic search. When disabled (or the model cannot load) search
    # runs keyword-only.
    embeddings_enabled: bool = field(
        default_factory=lambda: _env_bool("RECALL_EMBEDDINGS_ENABLED", True)
    )
    embedding_model: str = field(
        default_factory=lambda: os.environ.get("RECALL_EMBEDDING_MODEL", "all-MiniLM-L6-v2")
    )

    # Named-entity tagging (spaCy pipeline name)
    ner_model: str = field(
        default_factory=lambda: os.environ.get("RECALL_NER_MODEL", "en_core_web_sm")
    )

    # 0 = Monday, 6 = Sunday (datetime.weekday() numbering)
    week_start: int = field(default_factory=_week_start)

    @property
    def log_path(self) -> Path:
        return self.data_dir / "recallmate.log"


def load_settings() -> Settings:
    """Read settings from the current environment."""
    return Settings()
