"""Saved query results and the persisted record store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import PersistenceError
from .local_storage import LocalStorage

logger = logging.getLogger(__name__)

RECORDS_STORAGE_KEY = "knowledge_queries"


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """Render ``moment`` as UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


@dataclass(frozen=True, slots=True)
class QueryResult:
    """A confirmed explanation. ``timestamp`` is its identity inside the store."""

    timestamp: str
    query: str
    result: str
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "query": self.query,
            "result": self.result,
        }
        if self.category:
            data["category"] = self.category
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryResult":
        if not isinstance(data, dict):
            raise ValueError(f"Record must be an object, got {type(data).__name__}")
        timestamp = data.get("timestamp")
        if not isinstance(timestamp, str) or not timestamp:
            raise ValueError("Record is missing its timestamp")
        category = data.get("category")
        return cls(
            timestamp=timestamp,
            query=str(data.get("query", "")),
            result=str(data.get("result", "")),
            category=str(category) if category else None,
        )


class RecordStore:
    """
    Ordered list of saved query results, most recent first.

    The store is loaded once and written back in full after every mutation.
    A failed write raises ``PersistenceError`` but the in-memory change stays.
    """

    def __init__(self, storage: LocalStorage, *, storage_key: str = RECORDS_STORAGE_KEY) -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._records: List[QueryResult] = []
        self.load_warning: Optional[str] = None

    def load(self) -> List[QueryResult]:
        """Read the persisted records, falling back to an empty list on any error."""
        self.load_warning = None
        try:
            raw = self._storage.get_item(self._storage_key)
            if raw is None:
                self._records = []
                return self.records
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError("stored records are not a JSON array")
            self._records = [QueryResult.from_dict(item) for item in data]
        except (PersistenceError, ValueError) as exc:
            # json.JSONDecodeError is a ValueError subclass.
            logger.warning("Could not load saved queries, starting empty: %s", exc)
            self.load_warning = "无法加载历史数据，请检查本地存储"
            self._records = []
        logger.info("Loaded %d saved queries", len(self._records))
        return self.records

    @property
    def records(self) -> List[QueryResult]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def get(self, timestamp: str) -> Optional[QueryResult]:
        for record in self._records:
            if record.timestamp == timestamp:
                return record
        return None

    def recent(self, limit: int = 5) -> List[QueryResult]:
        return self._records[: max(0, limit)]

    def add(self, record: QueryResult) -> None:
        # Same timestamp means same identity: the newer record wins.
        self._records = [record] + [r for r in self._records if r.timestamp != record.timestamp]
        logger.info("Saved query '%s' at %s", record.query, record.timestamp)
        self._flush()

    def delete(self, timestamp: str) -> bool:
        remaining = [r for r in self._records if r.timestamp != timestamp]
        if len(remaining) == len(self._records):
            logger.warning("No saved query with timestamp %s", timestamp)
            return False
        self._records = remaining
        logger.info("Deleted saved query %s", timestamp)
        self._flush()
        return True

    def _flush(self) -> None:
        payload = json.dumps([r.to_dict() for r in self._records], ensure_ascii=False)
        self._storage.set_item(self._storage_key, payload)
