from __future__ import annotations

from collections.abc import Awaitable, Iterable, Mapping
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_MODEL

ChatRole = Literal["system", "user", "assistant"]
ParseFunction = Callable[[Any], Any | Awaitable[Any]]
EvaluationFunction = Callable[[Any, str | None], Any]
ArrayMethod = Literal["first", "each"]


class ChatMessage(BaseModel):
    role: ChatRole
    content: str

    model_config = ConfigDict(frozen=True, extra="forbid")


MessageInput = ChatMessage | Mapping[str, str]


def coerce_message(message: MessageInput) -> ChatMessage:
    if isinstance(message, ChatMessage):
        return message
    return ChatMessage.model_validate(dict(message))


class RecordedCall(BaseModel):
    """One operation chained onto a value before it resolved."""

    method: str
    args: tuple[Any, ...] = ()

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class RequestConfig(BaseModel):
    """Immutable per-request settings carried by a tag.

    Every derivation goes through :meth:`derive`, which returns a copy, so two
    tags branched from the same parent never see each other's changes.
    """

    model: str = DEFAULT_MODEL
    temperature: float | None = None
    static_messages: tuple[ChatMessage, ...] = ()
    n: int | None = Field(default=None, ge=1)
    stream: bool = False
    debug: bool = False
    parse: ParseFunction | None = None
    id: str | None = None
    evaluations: tuple[EvaluationFunction, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    def derive(self, **changes: Any) -> RequestConfig:
        if "n" in changes and changes["n"] is not None and changes["n"] < 1:
            raise ValueError(f"n must be a positive integer, got {changes['n']}")
        return self.model_copy(update=changes)

    def with_messages(self, messages: Iterable[MessageInput]) -> RequestConfig:
        added = tuple(coerce_message(message) for message in messages)
        return self.derive(static_messages=self.static_messages + added)

    def with_evaluations(self, evaluations: Iterable[EvaluationFunction]) -> RequestConfig:
        return self.derive(evaluations=self.evaluations + tuple(evaluations))

    @property
    def parse_name(self) -> str | None:
        if self.parse is None:
            return None
        name = getattr(self.parse, "__name__", "")
        if not name or name == "<lambda>":
            return "(anonymous)"
        return name


class CompletionRequest(BaseModel):
    model: str
    messages: list[dict[str, str]]
    temperature: float | None = None
    n: int = 1
    stream: bool = False

    @field_validator("messages")
    @classmethod
    def _require_messages(cls, value: list[dict[str, str]]) -> list[dict[str, str]]:
        if not value:
            raise ValueError("a completion request needs at least one message")
        return value

    @classmethod
    def from_config(cls, config: RequestConfig, prompt: str) -> CompletionRequest:
        messages = [message.model_dump() for message in config.static_messages]
        messages.append({"role": "user", "content": prompt})
        return cls(
            model=config.model or DEFAULT_MODEL,
            messages=messages,
            temperature=config.temperature,
            n=config.n or 1,
            stream=config.stream,
        )
