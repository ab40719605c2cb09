"""CategorizationClient: maps a query onto one of the user's predefined labels."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from domain.errors import ValidationError
from domain.settings import FALLBACK_CATEGORY

from .chat_client import ChatCompletionClient, ChatEndpoint
from .prompts import (
    CATEGORY_MAX_TOKENS,
    CATEGORY_TEMPERATURE,
    categorization_message,
    categorization_prompt,
)

logger = logging.getLogger(__name__)


def normalize_category(raw: str, labels: Sequence[str], *, fallback: str = FALLBACK_CATEGORY) -> str:
    """Coerce the model's free-text answer onto ``labels``.

    Exact match after trimming wins. Otherwise the first label (in configured
    order) that contains, or is contained in, the answer is used. Anything
    else becomes ``fallback``.
    """
    text = (raw or "").strip()
    if text in labels:
        return text
    for label in labels:
        if label in text or text in label:
            return label
    return fallback


class CategorizationClient:
    """Issues the short, near-deterministic labelling request."""

    def __init__(self, transport: Optional[ChatCompletionClient] = None) -> None:
        self._transport = transport or ChatCompletionClient()

    async def categorize(
        self,
        *,
        endpoint: ChatEndpoint,
        prompt_template: str,
        labels: Sequence[str],
        query: str,
    ) -> Optional[str]:
        """Return one of ``labels`` or the fallback label for ``query``.

        A 2xx body that is not JSON leaves the query uncategorized (``None``).
        """
        if not labels:
            raise ValidationError("没有可用的预设分类")
        logger.info("Requesting category for: %s", query)
        data = await self._transport.create(
            endpoint=endpoint,
            messages=[
                {"role": "system", "content": categorization_prompt(prompt_template, labels)},
                {"role": "user", "content": categorization_message(query)},
            ],
            max_tokens=CATEGORY_MAX_TOKENS,
            temperature=CATEGORY_TEMPERATURE,
        )
        if data is None:
            logger.warning("Category response for '%s' was not JSON; leaving it uncategorized", query)
            return None
        raw = ChatCompletionClient.message_content(data) or ""
        category = normalize_category(raw, labels)
        logger.info("Model answered %r; using category '%s'", raw, category)
        return category
