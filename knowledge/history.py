"""Read-side helpers for the history tab: filtering, category listing and export."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from domain.records import QueryResult, RecordStore, iso_timestamp

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"
UNCATEGORIZED = "uncategorized"

EXPORT_VERSION = "1.0"


def filter_records(
    records: Iterable[QueryResult],
    search_term: str = "",
    category: str = ALL_CATEGORIES,
) -> List[QueryResult]:
    """Return records matching the search term (query or result text, case-insensitive) and the category selector."""
    needle = (search_term or "").lower()
    matched: List[QueryResult] = []
    for record in records:
        if needle and needle not in record.query.lower() and needle not in record.result.lower():
            continue
        if category == ALL_CATEGORIES:
            pass
        elif category == UNCATEGORIZED:
            if record.category:
                continue
        elif record.category != category:
            continue
        matched.append(record)
    return matched


def collect_categories(records: Iterable[QueryResult]) -> List[str]:
    return sorted({record.category for record in records if record.category})


def build_export(records: Iterable[QueryResult], now: Optional[datetime] = None) -> Dict[str, Any]:
    queries = [record.to_dict() for record in records]
    logger.debug("Exporting %d saved queries", len(queries))
    return {
        "queries": queries,
        "exportTime": iso_timestamp(now),
        "version": EXPORT_VERSION,
    }


def export_json(records: Iterable[QueryResult], now: Optional[datetime] = None) -> str:
    return json.dumps(build_export(records, now), indent=2, ensure_ascii=False)


def export_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"knowledge_queries_{now.astimezone(timezone.utc).strftime('%Y-%m-%d')}.json"


class HistoryView:
    """Search/filter selection plus the record currently shown in detail."""

    def __init__(self) -> None:
        self.search_term: str = ""
        self.category: str = ALL_CATEGORIES
        self.selected_timestamp: Optional[str] = None

    def visible(self, records: Iterable[QueryResult]) -> List[QueryResult]:
        return filter_records(records, self.search_term, self.category)

    def select(self, timestamp: Optional[str]) -> None:
        self.selected_timestamp = timestamp

    def selected(self, store: RecordStore) -> Optional[QueryResult]:
        if self.selected_timestamp is None:
            return None
        record = store.get(self.selected_timestamp)
        if record is None:
            self.selected_timestamp = None
        return record

    def delete(self, store: RecordStore, timestamp: str) -> bool:
        """Delete through the store; clears the detail view if it showed that record."""
        if self.selected_timestamp == timestamp:
            self.selected_timestamp = None
        return store.delete(timestamp)
