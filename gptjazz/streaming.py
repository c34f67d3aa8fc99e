from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any, Generic, TypeVar

_LOGGER = logging.getLogger("gptjazz.streaming")

T = TypeVar("T")


class _Finished:
    pass


_FINISHED = _Finished()


class StreamTee(Generic[T]):
    """Fan one async source out to several independent consumers.

    Each consumer has its own buffer. Whoever needs the next item pulls it from
    the source under a lock and appends it to every live buffer, so a slow
    consumer never starves a fast one. A consumer that finishes or is closed
    drops its buffer; the source is closed once every consumer is done.
    """

    def __init__(self, source: AsyncIterable[T], consumers: int = 2) -> None:
        if consumers < 1:
            raise ValueError("StreamTee needs at least one consumer")
        self._source = source
        self._iterator: AsyncIterator[T] = source.__aiter__()
        self._buffers: list[deque[T | _Finished] | None] = [deque() for _ in range(consumers)]
        self._lock = asyncio.Lock()
        self._pending: asyncio.Future[None] | None = None
        self._error: BaseException | None = None
        self._exhausted = False
        self._source_closed = False
        self.consumers = tuple(self._consume(index) for index in range(consumers))

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    async def _pull(self) -> None:
        if self._exhausted:
            return
        try:
            item: T | _Finished = await self._iterator.__anext__()
        except StopAsyncIteration:
            item = _FINISHED
            self._exhausted = True
        except Exception as exc:
            _LOGGER.warning("Tee'd stream failed: %s", exc, exc_info=True)
            self._error = exc
            item = _FINISHED
            self._exhausted = True
        for buffer in self._buffers:
            if buffer is not None:
                buffer.append(item)

    async def _fill(self) -> None:
        # A pull outlives a cancelled consumer so the source is never
        # interrupted mid-item; the next consumer waits on the same pull.
        if self._pending is None or self._pending.done():
            self._pending = asyncio.ensure_future(self._pull())
        await asyncio.shield(self._pending)

    async def _consume(self, index: int) -> AsyncIterator[T]:
        try:
            while True:
                buffer = self._buffers[index]
                assert buffer is not None
                if not buffer:
                    async with self._lock:
                        if not buffer:
                            await self._fill()
                item = buffer.popleft()
                if isinstance(item, _Finished):
                    if self._error is not None:
                        raise self._error
                    return
                yield item
        finally:
            self._buffers[index] = None
            if all(buffer is None for buffer in self._buffers):
                await self._close_source()

    async def _close_source(self) -> None:
        if self._source_closed:
            return
        self._source_closed = True
        pending = self._pending
        if pending is not None and not pending.done():
            pending.cancel()
            return
        close = getattr(self._iterator, "aclose", None)
        if close is None or self._exhausted:
            return
        try:
            await close()
        except Exception as exc:
            _LOGGER.info("Closing tee'd source failed: %s", exc, exc_info=True)


def tee(source: AsyncIterable[T], consumers: int = 2) -> tuple[AsyncIterator[T], ...]:
    return StreamTee(source, consumers).consumers


async def drain_stream(stream: AsyncIterable[Any]) -> int:
    """Read ``stream`` to the end and drop the items.

    The upstream connection is only released once its response has been read in
    full, even when nobody is interested in the text any more.
    """
    count = 0
    async for _chunk in stream:
        count += 1
    _LOGGER.debug("Drained %d chunks", count)
    return count


def chunk_deltas(chunk: Any) -> list[tuple[int, str]]:
    """Return ``(choice_index, text)`` pairs carried by one streaming chunk."""
    choices = getattr(chunk, "choices", None)
    if choices is None and isinstance(chunk, dict):
        choices = chunk.get("choices")
    deltas: list[tuple[int, str]] = []
    for position, choice in enumerate(choices or []):
        if isinstance(choice, dict):
            index = choice.get("index", position)
            content = (choice.get("delta") or {}).get("content")
        else:
            index = getattr(choice, "index", position)
            content = getattr(getattr(choice, "delta", None), "content", None)
        if index is None:
            index = position
        deltas.append((int(index), content or ""))
    return deltas


async def iter_text(stream: AsyncIterable[Any], choice_index: int = 0) -> AsyncIterator[str]:
    async for chunk in stream:
        for index, text in chunk_deltas(chunk):
            if index == choice_index and text:
                yield text


async def collect_text(stream: AsyncIterable[Any], choice_index: int = 0) -> str:
    parts = [text async for text in iter_text(stream, choice_index)]
    return "".join(parts)
