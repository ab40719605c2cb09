"""Tests for the API settings model and settings store."""

import json

import pytest

from domain.errors import PersistenceError, ValidationError
from domain.local_storage import LocalStorage
from domain.settings import (
    DEFAULT_CATEGORIES,
    DEFAULT_CATEGORY_PROMPT,
    DEFAULT_QUERY_PROMPT,
    SETTINGS_STORAGE_KEY,
    APISettings,
    SettingsStore,
)


def test_defaults_have_no_credentials():
    settings = APISettings()
    assert settings.query_api_key == ""
    assert settings.category_enabled is False
    assert settings.predefined_categories == DEFAULT_CATEGORIES
    assert "{categories}" in settings.category_prompt


def test_loads_camel_case_keys_and_ignores_unknown_fields():
    settings = APISettings.from_dict(
        {
            "queryApiUrl": "https://x.test/v1/chat/completions",
            "queryApiKey": "sk-1",
            "categoryEnabled": True,
            "predefinedCategories": ["技术", " 技术 ", "", "科学"],
            "queryPrompt": None,
            "somethingElse": 1,
        }
    )
    assert settings.query_api_url == "https://x.test/v1/chat/completions"
    assert settings.category_enabled is True
    assert settings.predefined_categories == ["技术", "科学"]
    assert settings.query_prompt == ""
    assert settings.to_dict()["queryApiKey"] == "sk-1"


def test_invalid_shape_raises_validation_error():
    with pytest.raises(ValidationError):
        APISettings.from_dict({"predefinedCategories": "技术"})


def test_categorization_ready_requires_everything(configured_settings: APISettings):
    assert configured_settings.categorization_ready is False
    enabled = configured_settings.with_updates(category_enabled=True)
    assert enabled.categorization_ready is True
    assert enabled.with_updates(category_api_key=" ").categorization_ready is False
    assert enabled.with_updates(predefined_categories=[]).categorization_ready is False


def test_add_category_rejects_blank_and_duplicates(configured_settings: APISettings):
    added = configured_settings.with_category_added("  历史 ")
    assert added.predefined_categories == ["技术", "科学", "历史"]
    assert configured_settings.predefined_categories == ["技术", "科学"]

    with pytest.raises(ValidationError):
        added.with_category_added("历史")
    with pytest.raises(ValidationError):
        added.with_category_added("   ")


def test_remove_category_and_reset_prompts(configured_settings: APISettings):
    edited = configured_settings.with_updates(query_prompt="p", category_prompt="c").with_category_removed("技术")
    assert edited.predefined_categories == ["科学"]

    reset = edited.with_default_prompts()
    assert reset.query_prompt == DEFAULT_QUERY_PROMPT
    assert reset.category_prompt == DEFAULT_CATEGORY_PROMPT


def test_save_rejects_blank_query_key(storage: LocalStorage):
    store = SettingsStore(storage)
    with pytest.raises(ValidationError):
        store.save(APISettings(query_api_key="   "))
    assert storage.get_item(SETTINGS_STORAGE_KEY) is None
    assert store.settings.query_api_key == ""


def test_save_rejects_enabled_categorization_without_key(storage: LocalStorage):
    store = SettingsStore(storage)
    with pytest.raises(ValidationError):
        store.save(APISettings(query_api_key="sk", category_enabled=True, category_api_key=""))
    assert storage.get_item(SETTINGS_STORAGE_KEY) is None


def test_save_persists_whole_object(storage: LocalStorage, configured_settings: APISettings):
    store = SettingsStore(storage)
    store.save(configured_settings)

    stored = json.loads(storage.get_item(SETTINGS_STORAGE_KEY))
    assert stored == configured_settings.to_dict()

    reloaded = SettingsStore(storage)
    assert reloaded.load() == configured_settings
    assert reloaded.load_warning is None


def test_save_write_failure_keeps_settings_in_memory(storage: LocalStorage, configured_settings, monkeypatch):
    def fail(key, value):
        raise PersistenceError("read-only", key=key)

    monkeypatch.setattr(storage, "set_item", fail)
    store = SettingsStore(storage)

    with pytest.raises(PersistenceError):
        store.save(configured_settings)
    assert store.settings == configured_settings


def test_corrupt_settings_fall_back_to_defaults(storage: LocalStorage):
    storage.set_item(SETTINGS_STORAGE_KEY, "[1, 2")
    store = SettingsStore(storage)

    assert store.load() == APISettings()
    assert store.load_warning


def test_has_changes(settings_store: SettingsStore, configured_settings: APISettings):
    assert settings_store.has_changes(configured_settings) is False
    assert settings_store.has_changes(configured_settings.with_updates(query_model="other")) is True
