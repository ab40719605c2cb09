"""
Thin client for OpenAI-compatible chat-completion endpoints.

Requests are plain HTTPS POSTs with a bearer token. The blocking ``requests``
call is pushed onto a worker thread so callers can ``await`` it without
stalling the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from domain.errors import NetworkError, RequestFailed, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_MODEL = "gpt-3.5-turbo"


@dataclass(slots=True)
class ChatEndpoint:
    """Where to send a chat completion and how to authenticate."""

    url: str
    api_key: str
    model: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.url.strip() and self.api_key.strip())


class ChatCompletionClient:
    """
    Issues single-attempt chat-completion requests.

    One ``requests.Session`` is shared by every call so connections are
    reused between the explanation and categorization requests.
    """

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        request_timeout: Optional[float] = None,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/json",
                "User-Agent": "KnowledgeLookup/1.0",
            }
        )
        self._timeout = request_timeout

    async def create(
        self,
        *,
        endpoint: ChatEndpoint,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: Optional[float] = None,
    ) -> Any:
        """POST one chat completion and return the decoded JSON body (``None`` if it is not JSON)."""
        payload: Dict[str, Any] = {
            "model": endpoint.model or DEFAULT_REQUEST_MODEL,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        return await asyncio.to_thread(self._post, endpoint, payload)

    async def test_connection(self, endpoint: ChatEndpoint) -> None:
        """Send a minimal 'Hello' completion; returns quietly on a 2xx answer."""
        if not endpoint.configured:
            raise ValidationError("请先填写 API URL 和密钥")
        await self.create(
            endpoint=endpoint,
            messages=[{"role": "user", "content": "Hello"}],
            max_tokens=10,
        )
        logger.info("Connection test succeeded for %s", endpoint.url)

    @staticmethod
    def message_content(data: Any) -> Optional[str]:
        """Return ``choices[0].message.content`` or ``None`` for any other shape."""
        if not isinstance(data, dict):
            return None
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if content is None:
            return None
        return content if isinstance(content, str) else str(content)

    def _post(self, endpoint: ChatEndpoint, payload: Dict[str, Any]) -> Any:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {endpoint.api_key}",
        }
        logger.info("Sending chat completion to %s (model=%s)", endpoint.url, payload["model"])
        logger.debug("Chat completion payload: %s", payload)

        try:
            response = self._session.post(
                endpoint.url,
                json=payload,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.error("Chat completion request to %s failed: %s", endpoint.url, exc)
            raise NetworkError(exc) from exc

        logger.info("Chat completion response status: %s", response.status_code)
        if not 200 <= response.status_code < 300:
            logger.error("Chat completion HTTP error %s: %s", response.status_code, response.text)
            raise RequestFailed(status_code=response.status_code, body=response.text)

        try:
            data = response.json()
        except ValueError:
            logger.warning("Chat completion response from %s is not JSON", endpoint.url)
            return None
        logger.debug("Chat completion response payload: %s", data)
        return data
