from __future__ import annotations

import string
from collections.abc import Iterable, Sequence
from typing import Any

from .config import EvaluationFunction, MessageInput, ParseFunction, RequestConfig
from .debug import DEFAULT_SESSION, DebugSession
from .gpt_string import GPTString
from .providers.litellm import CompletionClient, LiteLLMClient

_FORMATTER = string.Formatter()


def split_template(template: str, *args: Any, **kwargs: Any) -> tuple[list[str], list[Any]]:
    """Split a ``str.format`` template into literal fragments and raw values.

    Values are not formatted; they are kept as-is so deferred values can be
    resolved later. ``fragments`` always has one more item than ``values``.
    """
    fragments: list[str] = []
    values: list[Any] = []
    pending = ""
    auto_index = 0
    for literal, field_name, format_spec, conversion in _FORMATTER.parse(template):
        pending += literal
        if field_name is None:
            continue
        if format_spec or conversion:
            raise ValueError(f"format specs and conversions are not supported: {{{field_name}}}")
        if field_name == "":
            key: int | str = auto_index
            auto_index += 1
        elif field_name.isdigit():
            key = int(field_name)
        elif field_name.isidentifier():
            key = field_name
        else:
            raise ValueError(f"unsupported template field: {{{field_name}}}")
        fragments.append(pending)
        pending = ""
        values.append(args[key] if isinstance(key, int) else kwargs[key])
    fragments.append(pending)
    return fragments, values


class Tag:
    """Immutable request builder.

    Each configuring method returns a new tag; calling a tag with template
    fragments and values returns a :class:`GPTString` bound to the tag's
    configuration.
    """

    def __init__(
        self,
        config: RequestConfig | None = None,
        *,
        client: CompletionClient | None = None,
        session: DebugSession | None = None,
    ) -> None:
        self.config = config or RequestConfig()
        self._client = client
        self.session = session or DEFAULT_SESSION

    def __repr__(self) -> str:
        return f"Tag({self.config!r})"

    @property
    def client(self) -> CompletionClient:
        if self._client is None:
            self._client = LiteLLMClient()
        return self._client

    def __call__(self, strings: Sequence[str] | str | None = None, *values: Any) -> GPTString:
        if strings is None:
            strings = []
        elif isinstance(strings, str):
            strings = [strings]
        return GPTString(
            self.config,
            client=self.client,
            session=self.session,
            strings=strings,
            children=values,
        )

    def template(self, template: str, *args: Any, **kwargs: Any) -> GPTString:
        fragments, values = split_template(template, *args, **kwargs)
        return self(fragments, *values)

    def _derive(self, config: RequestConfig) -> Tag:
        return Tag(config, client=self._client, session=self.session)

    def with_client(self, client: CompletionClient) -> Tag:
        return Tag(self.config, client=client, session=self.session)

    def id(self, label: str) -> Tag:
        return self._derive(self.config.derive(id=label))

    def temperature(self, temperature: float) -> Tag:
        return self._derive(self.config.derive(temperature=temperature))

    def model(self, model: str) -> Tag:
        return self._derive(self.config.derive(model=model))

    def n(self, n: int) -> Tag:
        return self._derive(self.config.derive(n=n))

    def stream(self, stream: bool = True) -> Tag:
        return self._derive(self.config.derive(stream=stream))

    def debug(self, debug: bool = True) -> Tag:
        return self._derive(self.config.derive(debug=debug))

    def parse(self, fn: ParseFunction) -> Tag:
        return self._derive(self.config.derive(parse=fn))

    def add_message(self, message: MessageInput) -> Tag:
        return self._derive(self.config.with_messages([message]))

    def add_messages(self, messages: Iterable[MessageInput]) -> Tag:
        return self._derive(self.config.with_messages(messages))

    def add_evaluation(self, evaluation: EvaluationFunction) -> Tag:
        return self._derive(self.config.with_evaluations([evaluation]))

    def add_evaluations(self, evaluations: Iterable[EvaluationFunction]) -> Tag:
        return self._derive(self.config.with_evaluations(evaluations))


gpt = Tag()
