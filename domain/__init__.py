"""Persisted state of the knowledge lookup tool: saved records, API settings and their storage."""

from .errors import (  # noqa: F401
    KnowledgeLookupError,
    NetworkError,
    PersistenceError,
    RequestFailed,
    ValidationError,
)
from .local_storage import LocalStorage  # noqa: F401
from .records import QueryResult, RecordStore, iso_timestamp  # noqa: F401
from .settings import APISettings, SettingsStore  # noqa: F401

__all__ = [
    "APISettings",
    "KnowledgeLookupError",
    "LocalStorage",
    "NetworkError",
    "PersistenceError",
    "QueryResult",
    "RecordStore",
    "RequestFailed",
    "SettingsStore",
    "ValidationError",
    "iso_timestamp",
]
