"""API settings model and its persisted store."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaValidationError
from pydantic.alias_generators import to_camel

from .errors import PersistenceError, ValidationError
from .local_storage import LocalStorage

logger = logging.getLogger(__name__)

SETTINGS_STORAGE_KEY = "api_settings"

CATEGORY_PLACEHOLDER = "{categories}"
FALLBACK_CATEGORY = "其他"

DEFAULT_API_URL = "https://api.siliconflow.cn/v1/chat/completions"
DEFAULT_MODEL = "deepseek-ai/DeepSeek-V3"
DEFAULT_CATEGORIES: List[str] = ["技术", "科学", "历史", "文化", "商业", "医学", "艺术", "体育", "政治", "教育"]

DEFAULT_QUERY_PROMPT: str = (
    "你是一个专业的知识助手。请用简洁明了的语言解释用户询问的名词或概念，"
    "包括定义、主要特点和应用场景。回答要准确、有条理。"
)

DEFAULT_CATEGORY_PROMPT: str = (
    f"你是一个分类专家。请从以下预设分类中选择一个最合适的分类：{CATEGORY_PLACEHOLDER}。"
    f"只返回一个分类词汇，不要解释。如果没有合适的分类，返回\"{FALLBACK_CATEGORY}\"。"
)


class APISettings(BaseModel):
    """Configuration for both chat-completion endpoints and the allowed category labels.

    Persisted with camelCase keys (``queryApiUrl`` ...) so files written by
    earlier versions of the tool load unchanged.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    query_api_url: str = DEFAULT_API_URL
    query_api_key: str = ""
    query_model: str = DEFAULT_MODEL
    category_api_url: str = DEFAULT_API_URL
    category_api_key: str = ""
    category_model: str = DEFAULT_MODEL
    category_enabled: bool = False
    predefined_categories: List[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    query_prompt: str = DEFAULT_QUERY_PROMPT
    category_prompt: str = DEFAULT_CATEGORY_PROMPT

    @field_validator(
        "query_api_url",
        "query_api_key",
        "query_model",
        "category_api_url",
        "category_api_key",
        "category_model",
        "query_prompt",
        "category_prompt",
        mode="before",
    )
    @classmethod
    def _none_as_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("predefined_categories", mode="before")
    @classmethod
    def _unique_categories(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise ValueError("predefinedCategories must be a list")
        seen: List[str] = []
        for item in value:
            label = str(item).strip()
            if label and label not in seen:
                seen.append(label)
        return seen

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------
    @property
    def query_configured(self) -> bool:
        return bool(self.query_api_url.strip() and self.query_api_key.strip())

    @property
    def categorization_ready(self) -> bool:
        """Categorization runs only when enabled, fully configured and given labels."""
        return bool(
            self.category_enabled
            and self.category_api_url.strip()
            and self.category_api_key.strip()
            and self.predefined_categories
        )

    def validate_for_save(self) -> None:
        if not self.query_api_key.strip():
            raise ValidationError("请填写查询 API 密钥")
        if self.category_enabled and not self.category_api_key.strip():
            raise ValidationError("分类功能已启用，请填写分类 API 密钥")

    # ------------------------------------------------------------------
    # Editing helpers (each returns a new settings object)
    # ------------------------------------------------------------------
    def with_updates(self, **changes: Any) -> "APISettings":
        data = self.to_dict()
        data.update({to_camel(key): value for key, value in changes.items()})
        return APISettings.from_dict(data)

    def with_category_added(self, label: str) -> "APISettings":
        label = (label or "").strip()
        if not label:
            raise ValidationError("请输入分类名称")
        if label in self.predefined_categories:
            raise ValidationError(f"分类已存在: {label}")
        return self.with_updates(predefined_categories=[*self.predefined_categories, label])

    def with_category_removed(self, label: str) -> "APISettings":
        return self.with_updates(
            predefined_categories=[c for c in self.predefined_categories if c != label]
        )

    def with_default_prompts(self) -> "APISettings":
        return self.with_updates(query_prompt=DEFAULT_QUERY_PROMPT, category_prompt=DEFAULT_CATEGORY_PROMPT)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "APISettings":
        try:
            return cls.model_validate(data)
        except SchemaValidationError as exc:
            raise ValidationError(f"设置格式无效: {exc.error_count()} 个字段错误") from exc


class SettingsStore:
    """Holds the current ``APISettings`` and writes them back wholesale on save."""

    def __init__(self, storage: LocalStorage, *, storage_key: str = SETTINGS_STORAGE_KEY) -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._settings = APISettings()
        self.load_warning: Optional[str] = None

    @property
    def settings(self) -> APISettings:
        return self._settings

    def load(self) -> APISettings:
        self.load_warning = None
        try:
            raw = self._storage.get_item(self._storage_key)
            if raw is None:
                logger.info("No saved settings found; using defaults.")
                self._settings = APISettings()
                return self._settings
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("stored settings are not a JSON object")
            self._settings = APISettings.from_dict(data)
        except (PersistenceError, ValidationError, ValueError) as exc:
            logger.warning("Could not load saved settings, using defaults: %s", exc)
            self.load_warning = "无法加载设置，已使用默认配置"
            self._settings = APISettings()
        return self._settings

    def save(self, settings: APISettings) -> APISettings:
        """Validate and persist ``settings``.

        Raises ``ValidationError`` without touching state when the settings are
        incomplete. Raises ``PersistenceError`` when the write fails; the new
        settings are still applied in memory in that case.
        """
        settings.validate_for_save()
        self._settings = settings
        logger.info(
            "Saving settings (query model=%s, categorization=%s, %d categories)",
            settings.query_model,
            "on" if settings.category_enabled else "off",
            len(settings.predefined_categories),
        )
        self._storage.set_item(self._storage_key, json.dumps(settings.to_dict(), ensure_ascii=False))
        return settings

    @staticmethod
    def defaults() -> APISettings:
        return APISettings()

    def has_changes(self, draft: APISettings) -> bool:
        return draft.to_dict() != self._settings.to_dict()
