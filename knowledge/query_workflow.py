"""
QueryWorkflow: explain a term, optionally categorize it, then let the user
confirm or discard the result.

The workflow owns the pending (unconfirmed) result and the in-flight flags.
Saved records and settings are reached through the injected stores, so a
single controller instance is the only writer of session state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from domain.errors import NetworkError, RequestFailed, ValidationError
from domain.records import QueryResult, RecordStore, iso_timestamp
from domain.settings import APISettings, SettingsStore
from query_state_manager import PendingQuery, WorkflowPhase

from .categorization_client import CategorizationClient
from .chat_client import ChatCompletionClient, ChatEndpoint
from .completion_client import CompletionClient

logger = logging.getLogger(__name__)


def query_endpoint(settings: APISettings) -> ChatEndpoint:
    return ChatEndpoint(url=settings.query_api_url, api_key=settings.query_api_key, model=settings.query_model)


def category_endpoint(settings: APISettings) -> ChatEndpoint:
    return ChatEndpoint(
        url=settings.category_api_url,
        api_key=settings.category_api_key,
        model=settings.category_model,
    )


class QueryWorkflow:
    """Idle -> Querying -> PendingConfirmation -> Idle."""

    def __init__(
        self,
        *,
        settings_store: SettingsStore,
        record_store: RecordStore,
        transport: Optional[ChatCompletionClient] = None,
        completion_client: Optional[CompletionClient] = None,
        categorization_client: Optional[CategorizationClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        transport = transport or ChatCompletionClient()
        self._settings_store = settings_store
        self._record_store = record_store
        self._completion = completion_client or CompletionClient(transport)
        self._categorizer = categorization_client or CategorizationClient(transport)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._pending: Optional[PendingQuery] = None
        self._querying = False
        self._categorizing = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def phase(self) -> WorkflowPhase:
        if self._querying:
            return WorkflowPhase.QUERYING
        if self._pending is not None:
            return WorkflowPhase.PENDING_CONFIRMATION
        return WorkflowPhase.IDLE

    @property
    def pending(self) -> Optional[PendingQuery]:
        return self._pending

    @property
    def is_querying(self) -> bool:
        return self._querying

    @property
    def is_categorizing(self) -> bool:
        return self._categorizing

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def submit(self, query: str) -> PendingQuery:
        """Run the explanation request and, when enabled, the categorization request."""
        if self._querying:
            raise ValidationError("查询进行中，请稍候")
        text = (query or "").strip()
        if not text:
            raise ValidationError("请输入您想查询的名词或概念")
        settings = self._settings_store.settings
        if not settings.query_configured:
            raise ValidationError("API 未配置，请先在设置中配置查询 API")

        self._querying = True
        self._pending = None
        try:
            result = await self._completion.complete(
                endpoint=query_endpoint(settings),
                system_prompt=settings.query_prompt,
                query=text,
            )
            category: Optional[str] = None
            if settings.categorization_ready:
                category = await self._categorize_quietly(settings, text)
            self._pending = PendingQuery(query=text, result=result, category=category)
            logger.info("Query '%s' is awaiting confirmation (category=%s)", text, category)
            return self._pending
        except (RequestFailed, NetworkError) as exc:
            logger.error("Query '%s' failed: %s", text, exc)
            raise
        finally:
            self._querying = False

    async def refresh_category(self, query: Optional[str] = None) -> Optional[str]:
        """Re-run categorization only, replacing the pending category.

        The answer is applied only if the same pending result is still held when
        it arrives; a result discarded or replaced meanwhile keeps its own
        category. Returns ``None`` when the endpoint gave no usable answer.
        """
        if self._categorizing:
            raise ValidationError("分类进行中，请稍候")
        if query is None:
            query = self._pending.query if self._pending else ""
        text = query.strip()
        if not text:
            raise ValidationError("请输入您想查询的名词或概念")
        settings = self._settings_store.settings
        if not settings.categorization_ready:
            raise ValidationError("分类功能未启用或未配置")

        started = self._pending
        self._categorizing = True
        try:
            category = await self._categorizer.categorize(
                endpoint=category_endpoint(settings),
                prompt_template=settings.category_prompt,
                labels=settings.predefined_categories,
                query=text,
            )
        finally:
            self._categorizing = False

        if category is None:
            logger.warning("Category refresh for '%s' got no usable answer", text)
        elif started is not None and self._pending is started:
            started.category = category
        else:
            logger.info("Dropping category '%s' for '%s'; pending result has changed", category, text)
        return category

    def set_category(self, label: str) -> None:
        pending = self._require_pending()
        if label not in self._settings_store.settings.predefined_categories:
            raise ValidationError(f"未知分类: {label}")
        pending.category = label

    def confirm(self) -> QueryResult:
        """Save the pending result as a new record and return to idle."""
        pending = self._require_pending()
        record = QueryResult(
            timestamp=iso_timestamp(self._clock()),
            query=pending.query.strip(),
            result=pending.result,
            category=pending.category or None,
        )
        self._pending = None
        self._record_store.add(record)
        return record

    def discard(self) -> None:
        if self._pending is not None:
            logger.info("Discarded pending result for '%s'", self._pending.query)
        self._pending = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _categorize_quietly(self, settings: APISettings, query: str) -> Optional[str]:
        try:
            return await self._categorizer.categorize(
                endpoint=category_endpoint(settings),
                prompt_template=settings.category_prompt,
                labels=settings.predefined_categories,
                query=query,
            )
        except (RequestFailed, NetworkError) as exc:
            logger.warning("Categorization failed for '%s'; leaving it uncategorized: %s", query, exc)
            return None

    def _require_pending(self) -> PendingQuery:
        if self._pending is None:
            raise ValidationError("没有待确认的查询结果")
        return self._pending
