from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any, Callable

from .constants import DEFAULT_STYLE
from .prompts import Generators, passage_prompt
from .streaming import collect_text

_LOGGER = logging.getLogger("gptjazz.composer")


async def text_of(result: Any) -> str:
    """Completion text of a resolved value, reading it out if it is a stream."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if hasattr(result, "__aiter__"):
        return await collect_text(result)
    return str(result)


class PassageComposer:
    """Endless sequence of ABC passages, each continuing the one before.

    The continuation of a passage is requested as soon as that passage is handed
    to the consumer, so it is usually ready before the passage finishes playing.
    """

    def __init__(
        self,
        generators: Generators,
        *,
        style: str = DEFAULT_STYLE,
        on_passage: Callable[[int, str], None] | None = None,
    ) -> None:
        self._generators = generators
        self._style = style
        self._on_passage = on_passage

    async def compose(self, previous: str | None = None) -> str:
        value = passage_prompt(self._generators, self._style, previous)
        return (await text_of(await value.get())).strip()

    async def passages(self, limit: int | None = None) -> AsyncIterator[str]:
        if limit is not None and limit <= 0:
            return
        current = await self.compose()
        index = 0
        while True:
            if not current:
                _LOGGER.warning("Passage %d came back empty", index)
            if self._on_passage is not None:
                self._on_passage(index, current)
            index += 1
            if limit is not None and index >= limit:
                yield current
                return
            upcoming = asyncio.ensure_future(self.compose(current or None))
            try:
                yield current
                current = await upcoming
            finally:
                if not upcoming.done():
                    upcoming.cancel()
