"""
Claims Intel - Saved Queries
Named SQL snippets kept newest-first, capped at MAX_SAVED_QUERIES, and
persisted to a JSON file so they survive restarts.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import config

logger = logging.getLogger(__name__)

MAX_SAVED_QUERIES = 50


@dataclass
class SavedQuery:
    name: str
    sql: str
    date: str
    category: Optional[str] = None
    template: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SavedQueryStore:
    """Newest-first list of saved queries addressed by index"""

    def __init__(self, path: Optional[str] = None, max_entries: int = MAX_SAVED_QUERIES):
        self.path = path
        self.max_entries = max_entries
        self._queries: List[SavedQuery] = []
        if self.path and os.path.exists(self.path):
            self._load()

    def _load(self) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load saved queries from {self.path}: {e}")
            return
        self._queries = [SavedQuery(**item) for item in data][: self.max_entries]
        logger.info(f"Loaded {len(self._queries)} saved queries")

    def _persist(self) -> None:
        if not self.path:
            return
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([q.to_dict() for q in self._queries], f, indent=2)
        os.replace(tmp_path, self.path)

    def entries(self) -> List[SavedQuery]:
        return list(self._queries)

    def save(
        self,
        name: str,
        sql: str,
        category: Optional[str] = None,
        template: Optional[str] = None,
    ) -> SavedQuery:
        """Prepend a query; the oldest entries beyond the cap are dropped."""
        name = (name or "").strip()
        if not name:
            raise ValueError("Saved query name is required")
        if not sql or not sql.strip():
            raise ValueError("Saved query SQL is empty")

        query = SavedQuery(
            name=name,
            sql=sql,
            date=datetime.now().isoformat(timespec="seconds"),
            category=category,
            template=template,
        )
        self._queries = [query] + self._queries[: self.max_entries - 1]
        self._persist()
        logger.info(f"Saved query '{name}' ({len(self._queries)} stored)")
        return query

    def get(self, index: int) -> SavedQuery:
        if index < 0:
            raise IndexError(index)
        return self._queries[index]

    def delete(self, index: int) -> SavedQuery:
        if index < 0:
            raise IndexError(index)
        removed = self._queries.pop(index)
        self._persist()
        return removed

    def clear(self) -> None:
        self._queries = []
        self._persist()


_store: Optional[SavedQueryStore] = None


def get_saved_query_store() -> SavedQueryStore:
    """Get singleton store backed by SAVED_QUERIES_FILE"""
    global _store
    if _store is None:
        _store = SavedQueryStore(config.SAVED_QUERIES_FILE)
    return _store
