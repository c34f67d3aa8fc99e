from __future__ import annotations

import io
from collections.abc import AsyncIterator, Sequence
from types import SimpleNamespace
from typing import Any, Callable

import pytest
from rich.console import Console

from gptjazz.config import CompletionRequest
from gptjazz.debug import DebugSession
from gptjazz.tag import Tag

Contents = Sequence[str | None]


def completion_response(*contents: str | None) -> SimpleNamespace:
    choices = [
        SimpleNamespace(index=index, message=SimpleNamespace(content=content))
        for index, content in enumerate(contents)
    ]
    return SimpleNamespace(choices=choices)


def stream_chunk(text: str, index: int = 0) -> SimpleNamespace:
    choice = SimpleNamespace(index=index, delta=SimpleNamespace(content=text))
    return SimpleNamespace(choices=[choice])


async def chunked(contents: Contents, size: int = 4) -> AsyncIterator[SimpleNamespace]:
    for index, content in enumerate(contents):
        text = content or ""
        for start in range(0, len(text), size):
            yield stream_chunk(text[start : start + size], index)


class FakeClient:
    """Records requests and answers with canned choices."""

    def __init__(
        self,
        contents: Contents | Callable[[CompletionRequest], Contents] = ("",),
        *,
        error: Exception | None = None,
    ) -> None:
        self._contents = contents
        self._error = error
        self.requests: list[CompletionRequest] = []
        self.closed = 0

    @property
    def calls(self) -> int:
        return len(self.requests)

    def prompts(self) -> list[str]:
        return [request.messages[-1]["content"] for request in self.requests]

    async def aclose(self) -> None:
        self.closed += 1

    async def create(self, request: CompletionRequest) -> Any:
        self.requests.append(request)
        if self._error is not None:
            raise self._error
        contents = self._contents(request) if callable(self._contents) else self._contents
        if request.stream:
            return chunked(contents)
        return completion_response(*contents)


@pytest.fixture
def debug_session() -> DebugSession:
    console = Console(file=io.StringIO(), width=120, force_terminal=False, color_system=None)
    return DebugSession(console)


@pytest.fixture
def make_tag(debug_session: DebugSession) -> Callable[..., tuple[Tag, FakeClient]]:
    def factory(
        contents: Contents | Callable[[CompletionRequest], Contents] = ("",),
        *,
        error: Exception | None = None,
    ) -> tuple[Tag, FakeClient]:
        client = FakeClient(contents, error=error)
        return Tag(client=client, session=debug_session), client

    return factory


@pytest.fixture
def chunk() -> Callable[..., SimpleNamespace]:
    return stream_chunk
