from __future__ import annotations

from collections.abc import Mapping


class GptJazzError(Exception):
    """Base error for the gptjazz library."""


class LLMInferenceError(GptJazzError):
    """Raised when a model provider fails to produce a response."""


class CompletionServiceError(LLMInferenceError):
    """Raised when the chat-completion service rejects a request."""

    def __init__(
        self,
        message: str,
        *,
        name: str = "APIError",
        status: int = 500,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.name = name
        self.status = status
        self.headers = dict(headers or {})
        self.message = message

    def to_payload(self) -> dict[str, object]:
        return {
            "name": self.name,
            "status": self.status,
            "headers": self.headers,
            "message": self.message,
        }


class UnsupportedOperationError(GptJazzError):
    """Raised when a deferred value is asked for an operation it cannot replay."""

    def __init__(self, method: str | None, target: str = "GPTStringArray") -> None:
        super().__init__(f'Cannot call "{method}" on {target}')
        self.method = method


class ModelNotAvailableError(GptJazzError):
    """Raised when required model dependencies are missing."""
