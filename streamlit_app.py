"""
Streamlit entry point for the knowledge lookup tool.

Type a term, get an explanation from the configured chat-completion API,
optionally have it categorized, then confirm or discard it. Saved results and
API settings persist in local storage between sessions.

Run with ``streamlit run streamlit_app.py``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Tuple

import streamlit as st
from dotenv import load_dotenv

from domain.errors import KnowledgeLookupError, PersistenceError, ValidationError
from domain.local_storage import LocalStorage
from domain.records import RecordStore
from domain.settings import APISettings, SettingsStore
from knowledge import QueryWorkflow
from knowledge.chat_client import ChatCompletionClient
from knowledge.history import (
    ALL_CATEGORIES,
    UNCATEGORIZED,
    HistoryView,
    collect_categories,
    export_filename,
    export_json,
)
from knowledge.query_workflow import category_endpoint, query_endpoint

# Ensure environment variables from .env are loaded before reading configuration.
load_dotenv()

logging.basicConfig(
    level=os.getenv("KNOWLEDGE_LOOKUP_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
LOGGER = logging.getLogger(__name__)

_TEXT_FIELDS = (
    "query_api_url",
    "query_api_key",
    "query_model",
    "category_api_url",
    "category_api_key",
    "category_model",
    "query_prompt",
    "category_prompt",
)


def _run_async(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except RuntimeError as exc:  # pragma: no cover - defensive path
        if "event loop is running" in str(exc):
            loop = asyncio.get_event_loop()
            return loop.run_until_complete(coro)
        raise


def _http_timeout() -> Optional[float]:
    raw = os.getenv("KNOWLEDGE_LOOKUP_HTTP_TIMEOUT", "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid KNOWLEDGE_LOOKUP_HTTP_TIMEOUT=%r", raw)
        return None


# ----------------------------------------------------------------------
# Session state
# ----------------------------------------------------------------------
def _init_session_state() -> None:
    """Build the per-session controller objects once."""
    if "workflow" in st.session_state:
        return

    storage = LocalStorage(Path(os.getenv("KNOWLEDGE_LOOKUP_DATA_DIR", "data")))
    settings_store = SettingsStore(storage)
    settings_store.load()
    record_store = RecordStore(storage)
    record_store.load()
    transport = ChatCompletionClient(request_timeout=_http_timeout())

    st.session_state.settings_store = settings_store
    st.session_state.record_store = record_store
    st.session_state.transport = transport
    st.session_state.workflow = QueryWorkflow(
        settings_store=settings_store,
        record_store=record_store,
        transport=transport,
    )
    st.session_state.history_view = HistoryView()
    st.session_state.notices: List[Tuple[str, str]] = []
    _load_settings_widgets(settings_store.settings)

    for warning in (settings_store.load_warning, record_store.load_warning):
        if warning:
            _notify("warning", warning)


def _notify(kind: str, message: str) -> None:
    st.session_state.notices.append((kind, message))


def _notify_error(title: str, exc: Exception) -> None:
    if not isinstance(exc, KnowledgeLookupError):
        LOGGER.exception("%s: %s", title, exc)
    _notify("error", f"{title}: {exc}")


def _flush_notices() -> None:
    for kind, message in st.session_state.notices:
        if kind == "error":
            st.toast(message, icon="⚠️")
        elif kind == "warning":
            st.warning(message)
        else:
            st.toast(message, icon="✅")
    st.session_state.notices = []


# ----------------------------------------------------------------------
# Query tab
# ----------------------------------------------------------------------
def _on_confirm() -> None:
    workflow: QueryWorkflow = st.session_state.workflow
    try:
        workflow.confirm()
        _notify("success", "已保存：查询结果已保存到历史记录")
    except PersistenceError as exc:
        _notify_error("保存失败", exc)
    except ValidationError as exc:
        _notify_error("无法保存", exc)
    st.session_state.query_text = ""


def _on_discard() -> None:
    st.session_state.workflow.discard()
    _notify("success", "已丢弃：查询结果已丢弃")


def _on_refresh_category() -> None:
    workflow: QueryWorkflow = st.session_state.workflow
    try:
        if _run_async(workflow.refresh_category()) is None:
            _notify("error", "分类刷新失败: 未获得有效的分类结果")
        else:
            _notify("success", "分类已刷新")
    except KnowledgeLookupError as exc:
        _notify_error("分类刷新失败", exc)


def _on_category_selected() -> None:
    label = st.session_state.pending_category
    try:
        st.session_state.workflow.set_category(label)
    except ValidationError as exc:
        _notify_error("分类无效", exc)


def _render_query_tab() -> None:
    workflow: QueryWorkflow = st.session_state.workflow
    record_store: RecordStore = st.session_state.record_store
    settings: APISettings = st.session_state.settings_store.settings

    with st.form("query_form"):
        st.text_input("知识查询", placeholder="输入您想查询的名词或概念...", key="query_text")
        submitted = st.form_submit_button("查询", disabled=workflow.is_querying, type="primary")

    if submitted:
        with st.spinner("查询中..."):
            try:
                _run_async(workflow.submit(st.session_state.query_text))
                _notify("success", "查询成功：已获取查询结果，请确认是否保存")
            except ValidationError as exc:
                _notify_error("无法查询", exc)
            except KnowledgeLookupError as exc:
                _notify_error("查询失败", exc)
            except Exception as exc:  # pragma: no cover - surfaced to UI
                _notify_error("查询失败", exc)
        _flush_notices()

    pending = workflow.pending
    if pending is not None:
        with st.container(border=True):
            st.subheader(pending.query)
            labels = list(settings.predefined_categories)
            left, right = st.columns([3, 1])
            with left:
                if pending.category:
                    options = labels if pending.category in labels else [pending.category, *labels]
                    st.session_state.pending_category = pending.category
                    st.selectbox("分类", options, key="pending_category", on_change=_on_category_selected)
                else:
                    st.caption("未分类")
            with right:
                if settings.categorization_ready:
                    st.button("刷新分类", on_click=_on_refresh_category, disabled=workflow.is_categorizing)
            st.text_area("查询结果", pending.result, height=240, disabled=True)
            confirm_col, discard_col = st.columns(2)
            confirm_col.button("确认保存", on_click=_on_confirm, type="primary", use_container_width=True)
            discard_col.button("丢弃", on_click=_on_discard, use_container_width=True)

    recent = record_store.recent(limit=5)
    if recent:
        st.divider()
        st.subheader("最近查询")
        for record in recent:
            title = record.query if not record.category else f"{record.query}  ·  {record.category}"
            with st.expander(title):
                st.caption(record.timestamp)
                st.markdown(record.result)


# ----------------------------------------------------------------------
# History tab
# ----------------------------------------------------------------------
def _on_delete_record(timestamp: str) -> None:
    view: HistoryView = st.session_state.history_view
    try:
        view.delete(st.session_state.record_store, timestamp)
        _notify("success", "已删除：查询记录已删除")
    except PersistenceError as exc:
        _notify_error("删除失败", exc)


def _category_label(value: str) -> str:
    if value == ALL_CATEGORIES:
        return "全部分类"
    if value == UNCATEGORIZED:
        return "未分类"
    return value


def _render_history_tab() -> None:
    record_store: RecordStore = st.session_state.record_store
    view: HistoryView = st.session_state.history_view
    records = record_store.records

    st.subheader(f"查询历史（共 {len(records)} 条记录）")
    search_col, category_col, export_col = st.columns([3, 2, 1])
    with search_col:
        view.search_term = st.text_input("搜索", placeholder="搜索查询内容...", value=view.search_term)
    with category_col:
        options = [ALL_CATEGORIES, UNCATEGORIZED, *collect_categories(records)]
        current = view.category if view.category in options else ALL_CATEGORIES
        view.category = st.selectbox(
            "分类筛选", options, index=options.index(current), format_func=_category_label
        )
    with export_col:
        st.download_button(
            "导出",
            data=export_json(records),
            file_name=export_filename(),
            mime="application/json",
            use_container_width=True,
        )

    visible = view.visible(records)
    list_col, detail_col = st.columns([1, 1])
    with list_col:
        if not visible:
            st.caption("没有找到匹配的查询记录")
        for record in visible:
            with st.container(border=True):
                st.markdown(f"**{record.query}**")
                st.caption(f"{record.timestamp}  ·  {record.category or '未分类'}")
                view_col, delete_col = st.columns(2)
                view_col.button(
                    "查看",
                    key=f"view_{record.timestamp}",
                    on_click=view.select,
                    args=(record.timestamp,),
                )
                delete_col.button(
                    "删除",
                    key=f"delete_{record.timestamp}",
                    on_click=_on_delete_record,
                    args=(record.timestamp,),
                )
    with detail_col:
        selected = view.selected(record_store)
        if selected is None:
            st.caption("选择一条记录查看详情")
        else:
            st.subheader(selected.query)
            st.caption(f"{selected.timestamp}  ·  {selected.category or '未分类'}")
            st.markdown(selected.result)


# ----------------------------------------------------------------------
# Settings tab
# ----------------------------------------------------------------------
def _load_settings_widgets(settings: APISettings) -> None:
    for field in _TEXT_FIELDS:
        st.session_state[f"settings_{field}"] = getattr(settings, field)
    st.session_state.settings_category_enabled = settings.category_enabled
    st.session_state.settings_categories = list(settings.predefined_categories)


def _draft_from_widgets() -> APISettings:
    values = {field: st.session_state[f"settings_{field}"] for field in _TEXT_FIELDS}
    return APISettings(
        **values,
        category_enabled=st.session_state.settings_category_enabled,
        predefined_categories=list(st.session_state.settings_categories),
    )


def _on_save_settings() -> None:
    settings_store: SettingsStore = st.session_state.settings_store
    try:
        settings_store.save(_draft_from_widgets())
        _notify("success", "设置已保存：API 配置已成功保存")
    except ValidationError as exc:
        _notify_error("配置错误", exc)
    except PersistenceError as exc:
        _notify_error("保存失败", exc)


def _on_reset_settings() -> None:
    _load_settings_widgets(SettingsStore.defaults())
    _notify("success", "已重置：设置已重置为默认值（保存后生效）")


def _on_reset_prompts() -> None:
    draft = _draft_from_widgets().with_default_prompts()
    st.session_state.settings_query_prompt = draft.query_prompt
    st.session_state.settings_category_prompt = draft.category_prompt
    _notify("success", "提示词已重置：提示词已恢复为默认值")


def _on_add_category() -> None:
    try:
        draft = _draft_from_widgets().with_category_added(st.session_state.new_category)
    except ValidationError as exc:
        _notify_error("添加失败", exc)
        return
    st.session_state.settings_categories = list(draft.predefined_categories)
    st.session_state.new_category = ""
    _notify("success", "添加成功：新分类已添加")


def _on_remove_category(label: str) -> None:
    draft = _draft_from_widgets().with_category_removed(label)
    st.session_state.settings_categories = list(draft.predefined_categories)
    _notify("success", f"删除成功：分类“{label}”已删除")


def _on_test_connection(kind: str) -> None:
    transport: ChatCompletionClient = st.session_state.transport
    draft = _draft_from_widgets()
    endpoint = query_endpoint(draft) if kind == "query" else category_endpoint(draft)
    name = "查询" if kind == "query" else "分类"
    try:
        _run_async(transport.test_connection(endpoint))
        _notify("success", f"连接成功：{name} API 连接正常")
    except KnowledgeLookupError as exc:
        _notify_error(f"无法连接到{name} API", exc)


def _render_settings_tab() -> None:
    settings_store: SettingsStore = st.session_state.settings_store

    st.subheader("查询 API")
    st.text_input("API URL", key="settings_query_api_url")
    st.text_input("API 密钥", key="settings_query_api_key", type="password")
    st.text_input("模型", key="settings_query_model")
    st.button("测试连接", key="test_query", on_click=_on_test_connection, args=("query",))

    st.divider()
    st.subheader("分类 API")
    st.toggle("启用自动分类", key="settings_category_enabled")
    st.text_input("API URL", key="settings_category_api_url")
    st.text_input("API 密钥", key="settings_category_api_key", type="password")
    st.text_input("模型", key="settings_category_model")
    st.button("测试连接", key="test_category", on_click=_on_test_connection, args=("category",))

    st.divider()
    st.subheader("预设分类")
    for label in st.session_state.settings_categories:
        label_col, remove_col = st.columns([4, 1])
        label_col.markdown(label)
        remove_col.button("移除", key=f"remove_{label}", on_click=_on_remove_category, args=(label,))
    add_col, button_col = st.columns([4, 1])
    add_col.text_input("新分类", key="new_category", placeholder="输入新的分类名称")
    button_col.button("添加", on_click=_on_add_category)

    st.divider()
    st.subheader("提示词")
    st.text_area("查询提示词", key="settings_query_prompt", height=120)
    st.text_area("分类提示词（{categories} 会被替换为预设分类）", key="settings_category_prompt", height=120)
    st.button("重置提示词", on_click=_on_reset_prompts)

    st.divider()
    if settings_store.has_changes(_draft_from_widgets()):
        st.caption("有未保存的更改")
    save_col, reset_col = st.columns(2)
    save_col.button("保存设置", on_click=_on_save_settings, type="primary", use_container_width=True)
    reset_col.button("重置为默认", on_click=_on_reset_settings, use_container_width=True)


def main() -> None:
    st.set_page_config(page_title="智能知识查询工具", layout="wide")

    st.title("智能知识查询工具")
    st.caption("快速查询名词概念，自动分类整理，构建你的专属知识库")

    _init_session_state()
    _flush_notices()

    query_tab, history_tab, settings_tab = st.tabs(["查询", "历史", "设置"])
    with query_tab:
        _render_query_tab()
    with history_tab:
        _render_history_tab()
    with settings_tab:
        _render_settings_tab()


if __name__ == "__main__":
    main()
