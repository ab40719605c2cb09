"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from domain.local_storage import LocalStorage
from domain.records import RecordStore
from domain.settings import APISettings, SettingsStore
from knowledge.chat_client import ChatCompletionClient

_UNSET = object()


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    """Local storage rooted in a per-test temporary directory."""
    return LocalStorage(tmp_path / "data")


@pytest.fixture
def make_response():
    """Factory for ``requests.Response``-like mocks.

    ``content`` builds an OpenAI-style body with a single choice; ``payload``
    sets the decoded JSON body verbatim; ``payload=None`` makes ``.json()``
    fail as it does for non-JSON bodies.
    """

    def factory(status_code: int = 200, *, content=None, payload=_UNSET, text: str = ""):
        response = MagicMock()
        response.status_code = status_code
        if payload is _UNSET:
            payload = {"choices": [{"message": {"role": "assistant", "content": content}}]}
        if payload is None:
            response.json.side_effect = ValueError("Expecting value")
            response.text = text or "<html>oops</html>"
        else:
            response.json.return_value = payload
            response.text = text or json.dumps(payload, ensure_ascii=False)
        return response

    return factory


@pytest.fixture
def session() -> MagicMock:
    """A fake ``requests.Session``; set ``session.post.side_effect`` per test."""
    fake = MagicMock()
    fake.headers = {}
    return fake


@pytest.fixture
def transport(session: MagicMock) -> ChatCompletionClient:
    return ChatCompletionClient(session=session)


@pytest.fixture
def configured_settings() -> APISettings:
    return APISettings(
        query_api_url="https://llm.example.test/v1/chat/completions",
        query_api_key="sk-query",
        query_model="test-model",
        category_api_url="https://cat.example.test/v1/chat/completions",
        category_api_key="sk-category",
        category_model="cat-model",
        category_enabled=False,
        predefined_categories=["技术", "科学"],
    )


@pytest.fixture
def settings_store(storage: LocalStorage, configured_settings: APISettings) -> SettingsStore:
    store = SettingsStore(storage)
    store.save(configured_settings)
    return store


@pytest.fixture
def record_store(storage: LocalStorage) -> RecordStore:
    store = RecordStore(storage)
    store.load()
    return store


@pytest.fixture
def clock():
    """Deterministic clock advancing one millisecond per call."""
    start = datetime(2024, 5, 1, 8, 30, 0, tzinfo=timezone.utc)
    ticks = {"n": 0}

    def now() -> datetime:
        ticks["n"] += 1
        return start + timedelta(milliseconds=ticks["n"])

    return now
