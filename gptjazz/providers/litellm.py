from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping
from typing import Any, Protocol

from ..config import CompletionRequest
from ..errors import CompletionServiceError, ModelNotAvailableError

_LOGGER = logging.getLogger("gptjazz.providers.litellm")
_RESERVED_LITELLM_KWARGS = frozenset({"model", "messages", "n", "stream", "temperature"})
_litellm_logging_configured = False


class CompletionClient(Protocol):
    async def create(self, request: CompletionRequest) -> Any:
        """Return a completion response, or an async chunk stream when streaming."""
        ...


def _configure_litellm_logging(litellm_module: Any) -> None:
    global _litellm_logging_configured
    if _litellm_logging_configured:
        return
    _litellm_logging_configured = True
    try:
        litellm_module.turn_off_message_logging = True
        litellm_module.disable_streaming_logging = True
        litellm_module.logging = False
    except Exception as exc:
        _LOGGER.info("LiteLLM logging config failed: %s", exc, exc_info=True)
    warnings.filterwarnings("ignore", message="Pydantic serializer warnings")


def _response_headers(exc: BaseException) -> dict[str, str]:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return {}
    try:
        return {str(key): str(value) for key, value in dict(headers).items()}
    except (TypeError, ValueError):
        return {}


def to_service_error(exc: BaseException) -> CompletionServiceError:
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    message = getattr(exc, "message", None) or str(exc)
    return CompletionServiceError(
        str(message),
        name=type(exc).__name__,
        status=int(status) if isinstance(status, int) else 500,
        headers=_response_headers(exc),
    )


class LiteLLMClient:
    """Chat-completion client backed by ``litellm.acompletion``."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        organization: str | None = None,
        litellm_kwargs: Mapping[str, Any] | None = None,
    ) -> None:
        self._api_key = api_key
        self._organization = organization
        self._litellm_kwargs = dict(litellm_kwargs or {})
        if self._api_key is None:
            _LOGGER.debug("No API key provided; letting LiteLLM read from env vars.")
        invalid_keys = _RESERVED_LITELLM_KWARGS.intersection(self._litellm_kwargs)
        if invalid_keys:
            keys = ", ".join(sorted(invalid_keys))
            raise ValueError(f"litellm_kwargs cannot override: {keys}")

    async def aclose(self) -> None:
        try:
            import litellm  # type: ignore[import]
        except ImportError as exc:
            _LOGGER.info("LiteLLM not installed; skipping async close: %s", exc)
            return
        close_fn: Any = getattr(litellm, "aclose", None)
        if close_fn is None:
            close_fn = getattr(litellm, "close_litellm_async_clients", None)
        if close_fn is None:
            return
        try:
            await close_fn()
        except Exception as exc:
            _LOGGER.warning("LiteLLM close failed: %s", exc, exc_info=True)

    async def create(self, request: CompletionRequest) -> Any:
        try:
            import litellm  # type: ignore[import]
            from openai import APIError
        except ImportError as exc:
            _LOGGER.warning("LiteLLM not installed: %s", exc)
            raise ModelNotAvailableError("litellm is not installed") from exc

        _configure_litellm_logging(litellm)
        payload = request.model_dump(exclude_none=True)
        if self._api_key:
            payload["api_key"] = self._api_key
        if self._organization:
            payload["organization"] = self._organization
        payload.update(self._litellm_kwargs)

        _LOGGER.debug(
            "Requesting completion model=%s n=%s stream=%s messages=%d",
            request.model,
            request.n,
            request.stream,
            len(request.messages),
        )
        try:
            return await litellm.acompletion(**payload)
        except APIError as exc:
            _LOGGER.warning("LiteLLM request failed: %s", exc, exc_info=True)
            raise to_service_error(exc) from exc


def response_choices(response: Any, limit: int) -> list[str | None]:
    """Text content of up to ``limit`` choices, ``None`` where a choice has none."""
    match response:
        case {"choices": choices}:
            pass
        case _ if hasattr(response, "choices"):
            choices = response.choices
        case _:
            choices = []
    contents: list[str | None] = []
    for choice in list(choices or [])[:limit]:
        if isinstance(choice, dict):
            message = choice.get("message") or {}
            content = message.get("content")
        else:
            content = getattr(getattr(choice, "message", None), "content", None)
        contents.append(content if isinstance(content, str) else None)
    return contents
