"""Recall: the intelligence layer over a personal store of captured snippets.

- Entity extraction and co-occurrence graph (recallmate.memory.graph)
- Hybrid keyword + semantic search (recallmate.services.search)
- Multi-step reasoning with entity and time constraints
  (recallmate.services.reasoning)
- Templated narrative digests (recallmate.services.stories)

Records are read through the RecordAccess protocol in recallmate.records.
"""

from __future__ import annotations

__version__ = "0.1.0"
