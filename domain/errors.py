"""Error taxonomy shared by the stores, the remote clients and the workflow."""

from __future__ import annotations

from typing import Optional


class KnowledgeLookupError(RuntimeError):
    """Base class for every failure surfaced to the user as a notification."""


class ValidationError(KnowledgeLookupError):
    """Raised when required input is missing or invalid (query text, credentials, labels)."""


class RequestFailed(KnowledgeLookupError):
    """Raised when a chat-completion endpoint answers with a non-2xx status."""

    def __init__(self, *, status_code: int, body: str = "") -> None:
        super().__init__(f"请求失败 (HTTP {status_code})")
        self.status_code = status_code
        self.body = body


class NetworkError(KnowledgeLookupError):
    """Raised when the request never produced an HTTP response."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"网络错误: {cause}")
        self.cause = cause


class PersistenceError(KnowledgeLookupError):
    """Raised when local storage cannot be read or written."""

    def __init__(self, message: str, *, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key
