"""CompletionClient: asks the configured model to explain a term."""

from __future__ import annotations

import logging
from typing import Optional

from .chat_client import ChatCompletionClient, ChatEndpoint
from .prompts import (
    EMPTY_RESULT_PLACEHOLDER,
    EXPLANATION_MAX_TOKENS,
    EXPLANATION_TEMPERATURE,
    explanation_message,
    explanation_prompt,
)

logger = logging.getLogger(__name__)


class CompletionClient:
    """Produces the explanation text shown to the user for confirmation."""

    def __init__(self, transport: Optional[ChatCompletionClient] = None) -> None:
        self._transport = transport or ChatCompletionClient()

    async def complete(self, *, endpoint: ChatEndpoint, system_prompt: str, query: str) -> str:
        """Return the model's explanation of ``query``.

        Raises ``RequestFailed`` on a non-2xx answer and ``NetworkError`` when
        the endpoint is unreachable. A response without content yields the
        empty-result placeholder instead of an error.
        """
        logger.info("Requesting explanation for: %s", query)
        data = await self._transport.create(
            endpoint=endpoint,
            messages=[
                {"role": "system", "content": explanation_prompt(system_prompt)},
                {"role": "user", "content": explanation_message(query)},
            ],
            max_tokens=EXPLANATION_MAX_TOKENS,
            temperature=EXPLANATION_TEMPERATURE,
        )
        content = ChatCompletionClient.message_content(data)
        if not content:
            logger.warning("Explanation response for '%s' had no content", query)
            return EMPTY_RESULT_PLACEHOLDER
        return content
