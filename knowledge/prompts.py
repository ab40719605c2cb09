"""
Request templates used by the explanation and categorization clients.

System prompts are user-configurable (see ``domain.settings``); only the user
messages and sampling parameters are fixed here.
"""

from __future__ import annotations

from typing import Sequence

from domain.settings import CATEGORY_PLACEHOLDER, DEFAULT_CATEGORY_PROMPT, DEFAULT_QUERY_PROMPT

EXPLANATION_MAX_TOKENS: int = 500
EXPLANATION_TEMPERATURE: float = 0.35

CATEGORY_MAX_TOKENS: int = 10
CATEGORY_TEMPERATURE: float = 0.1

CATEGORY_DELIMITER: str = "、"

EMPTY_RESULT_PLACEHOLDER: str = "查询结果为空"


def explanation_message(query: str) -> str:
    """Return the user message asking for an explanation of ``query``."""

    return f"请解释：{query}"


def categorization_message(query: str) -> str:
    """Return the user message asking which label fits ``query``."""

    return f"请为\"{query}\"选择最合适的分类"


def explanation_prompt(configured: str) -> str:
    return configured.strip() or DEFAULT_QUERY_PROMPT


def categorization_prompt(template: str, labels: Sequence[str]) -> str:
    """Substitute the joined label list into the configured (or default) template."""

    template = template.strip() or DEFAULT_CATEGORY_PROMPT
    return template.replace(CATEGORY_PLACEHOLDER, CATEGORY_DELIMITER.join(labels))
