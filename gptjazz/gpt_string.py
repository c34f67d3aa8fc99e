# pyright: reportPrivateUsage=false

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Sequence
from itertools import zip_longest
from typing import Any, Callable

from .chain import (
    apply_parse,
    is_text_op,
    process_array_call_stack,
    process_call_stack,
)
from .config import CompletionRequest, ParseFunction, RecordedCall, RequestConfig
from .debug import DEFAULT_SESSION, DebugSession, debug, debug_stream
from .providers.litellm import CompletionClient, response_choices
from .streaming import tee

_LOGGER = logging.getLogger("gptjazz.gpt_string")


async def resolve_child(child: Any) -> str:
    """Turn an interpolated template value into prompt text.

    A failure never aborts the request: the error's text takes the value's
    place in the prompt.
    """
    try:
        if inspect.isawaitable(child):
            return await resolve_child(await child)
        if isinstance(child, GPTString):
            return f"{await child.get()}"
        if callable(child):
            return await resolve_child(child())
        return f"{child}"
    except Exception as exc:
        _LOGGER.warning("Interpolated value failed to resolve: %s", exc, exc_info=True)
        return f"{type(exc).__name__}: {exc}"


def _log_debug_result(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _LOGGER.warning("Debug stream failed: %s", exc, exc_info=exc)


def interleave(strings: Sequence[str], children: Sequence[str]) -> str:
    return "".join(
        part for pair in zip_longest(strings, children, fillvalue="") for part in pair
    )


class GPTString:
    """A prompt whose completion is fetched lazily and at most once.

    Text operations called before :meth:`get` (``strip``, ``upper``,
    ``replace``, slicing, ...) are recorded and replayed on the completion.
    ``is_``/``includes`` and ``first``/``each`` return a new value instead of
    changing this one.
    """

    _is_gpt_string = True

    def __init__(
        self,
        config: RequestConfig,
        *,
        client: CompletionClient,
        session: DebugSession | None = None,
        strings: Sequence[str] = (),
        children: Sequence[Any] = (),
        call_stack: Sequence[RecordedCall] = (),
        array_call_stack: Sequence[RecordedCall] = (),
        cached_run: asyncio.Future[Any] | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.session = session or DEFAULT_SESSION
        self.strings: list[str] = list(strings)
        self.children: list[Any] = list(children)
        self.call_stack: list[RecordedCall] = list(call_stack)
        self.array_call_stack: list[RecordedCall] = list(array_call_stack)
        self.parse: ParseFunction | None = config.parse
        self.cached_run = cached_run
        self.debug_task: asyncio.Task[Any] | None = None

    def __repr__(self) -> str:
        state = "unresolved"
        if self.cached_run is not None:
            state = "resolved" if self.cached_run.done() else "resolving"
        return f"<GPTString {state} strings={self.strings!r} calls={len(self.call_stack)}>"

    def __getattr__(self, name: str) -> Callable[..., GPTString]:
        if name.startswith("_"):
            raise AttributeError(name)
        if name == "is":
            return self.is_
        if is_text_op(name):

            def record(*args: Any) -> GPTString:
                self.call_stack.append(RecordedCall(method=name, args=args))
                return self

            return record
        raise AttributeError(f"{type(self).__name__!r} has no chainable operation {name!r}")

    def __getitem__(self, key: slice | int) -> GPTString:
        if isinstance(key, slice):
            if key.step is not None:
                raise ValueError("stepped slices are not chainable")
            self.call_stack.append(RecordedCall(method="slice", args=(key.start, key.stop)))
            return self
        stop = None if key == -1 else key + 1
        self.call_stack.append(RecordedCall(method="slice", args=(key, stop)))
        return self

    def length(self) -> GPTString:
        self.call_stack.append(RecordedCall(method="length"))
        return self

    def _copy(self) -> GPTString:
        return GPTString(
            self.config,
            client=self.client,
            session=self.session,
            strings=self.strings,
            children=self.children,
            call_stack=self.call_stack,
            array_call_stack=self.array_call_stack,
            cached_run=self.cached_run,
        )

    def _branch(self, method: str, args: tuple[Any, ...]) -> GPTString:
        copy = self._copy()
        copy.call_stack.append(RecordedCall(method=method, args=args))
        return copy

    def is_(self, value: Any, then: Any, otherwise: Any) -> GPTString:
        """Resolve to ``then`` when the text equals ``value``, else ``otherwise``."""
        return self._branch("is", (value, then, otherwise))

    def includes(self, value: Any, then: Any, otherwise: Any) -> GPTString:
        """Resolve to ``then`` when the text contains ``value``, else ``otherwise``."""
        return self._branch("includes", (value, then, otherwise))

    def _reduce(self, method: str, args: tuple[Any, ...]) -> GPTString:
        copy = self._copy()
        copy.array_call_stack.append(RecordedCall(method=method, args=args))
        return copy

    def first(self) -> GPTString:
        return self._reduce("first", ())

    def each(self, delimiter: str = "") -> GPTString:
        return self._reduce("each", (delimiter,))

    async def get(self) -> Any:
        if self.cached_run is None:
            self.cached_run = asyncio.ensure_future(self._run())
        return await self.cached_run

    async def _run(self) -> Any:
        config = self.config
        processed = [await resolve_child(child) for child in self.children]
        message = interleave(self.strings, processed)
        request = CompletionRequest.from_config(config, message)

        if config.stream:
            stream = await self.client.create(request)
            if not config.debug:
                return stream
            caller_copy, debug_copy = tee(stream)
            self.debug_task = asyncio.ensure_future(
                debug_stream(
                    self.session,
                    debug_copy,
                    strings=self.strings,
                    children=processed,
                    config=config,
                )
            )
            self.debug_task.add_done_callback(_log_debug_result)
            return caller_copy

        response = await self.client.create(request)
        choices = response_choices(response, config.n or 1)
        if config.debug:
            debug(self.session, strings=self.strings, children=processed, choices=choices, config=config)

        parse = self.parse
        if config.n is None:
            first = choices[0] if choices else None
            value = await process_call_stack(self.call_stack, await apply_parse(parse, first))
        else:
            values = [await apply_parse(parse, choice) for choice in choices]
            call = self.array_call_stack[0] if self.array_call_stack else None
            value = await process_array_call_stack(call, self.call_stack, values, parse)
        self.call_stack = []
        self.array_call_stack = []
        self.parse = None
        return value
