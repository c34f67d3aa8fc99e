from __future__ import annotations

from .config import ChatMessage, CompletionRequest, RecordedCall, RequestConfig
from .constants import DEFAULT_MODEL
from .debug import DEFAULT_SESSION, DebugSession
from .errors import (
    CompletionServiceError,
    GptJazzError,
    LLMInferenceError,
    ModelNotAvailableError,
    UnsupportedOperationError,
)
from .gpt_string import GPTString
from .logging_utils import configure_logging as _configure_logging
from .providers.litellm import CompletionClient, LiteLLMClient
from .streaming import StreamTee, collect_text, drain_stream, iter_text, tee
from .tag import Tag, gpt

__all__ = [
    "DEFAULT_MODEL",
    "DEFAULT_SESSION",
    "ChatMessage",
    "CompletionClient",
    "CompletionRequest",
    "CompletionServiceError",
    "DebugSession",
    "GPTString",
    "GptJazzError",
    "LLMInferenceError",
    "LiteLLMClient",
    "ModelNotAvailableError",
    "RecordedCall",
    "RequestConfig",
    "StreamTee",
    "Tag",
    "UnsupportedOperationError",
    "collect_text",
    "drain_stream",
    "gpt",
    "iter_text",
    "tee",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
