"""Terminal view of prompts and their results, for development only."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, Sequence
from typing import Any

from rich import box
from rich.console import Console, Group, RenderableType
from rich.table import Table
from rich.text import Text

from .config import RequestConfig
from .constants import DEFAULT_MODEL
from .streaming import chunk_deltas

_LOGGER = logging.getLogger("gptjazz.debug")

VAR_COLORS: tuple[str, ...] = ("red", "green", "yellow", "blue", "magenta", "cyan")


class DebugSession:
    """Rendering state shared by every debugged request in a process.

    Holds the table counter, the text-to-colour registry used to underline
    interpolated values with the colour of the request that produced them, and
    the scrollback that is redrawn on each update. Diagnostic only: the registry
    is never evicted, and :meth:`reset` clears everything.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)
        self.counter = 0
        self.colors: dict[str, str] = {}
        self._history: list[RenderableType] = []
        self._latest: RenderableType | None = None

    def reset(self) -> None:
        self.counter = 0
        self.colors.clear()
        self._history.clear()
        self._latest = None

    @property
    def history(self) -> tuple[RenderableType, ...]:
        return tuple(self._history)

    @property
    def latest(self) -> RenderableType | None:
        return self._latest

    def current_color(self) -> str:
        return VAR_COLORS[self.counter % len(VAR_COLORS)]

    def write(self, renderable: RenderableType) -> None:
        """Commit ``renderable`` to the scrollback and redraw."""
        if self._latest is not None:
            self._history.append(self._latest)
            self._latest = None
        self._history.append(renderable)
        self._redraw()

    def update_latest(self, renderable: RenderableType) -> None:
        """Replace the live, still-changing entry and redraw."""
        self._latest = renderable
        self._redraw()

    def _redraw(self) -> None:
        self.console.clear()
        items = list(self._history)
        if self._latest is not None:
            items.append(self._latest)
        self.console.print(Group(*items))


DEFAULT_SESSION = DebugSession()


def _metadata_line(config: RequestConfig) -> str:
    parts: list[str] = []
    if isinstance(config.id, str):
        parts.append(f"[{config.id}]")
    parts.append(config.model or DEFAULT_MODEL)
    if config.temperature is not None:
        parts.append(f"temperature={config.temperature}")
    if config.parse_name is not None:
        parts.append(f"parseFn={config.parse_name}")
    if config.n is not None and config.n > 1:
        parts.append(f"choices={config.n}")
    if config.stream:
        parts.append("streaming")
    return " ".join(parts)


def build_table(
    session: DebugSession,
    *,
    strings: Sequence[str],
    children: Sequence[str],
    choices: Sequence[str | None],
    config: RequestConfig,
) -> Table:
    color = session.current_color()
    table = Table(
        box=box.SQUARE,
        expand=True,
        show_lines=True,
        caption=Text(_metadata_line(config), style="white"),
        caption_justify="right",
    )
    table.add_column(Text("Prompt", style=color), ratio=1, overflow="fold")
    table.add_column(Text("Results" if choices else "Result", style=color), ratio=1, overflow="fold")

    prompt = Text()
    for index, string in enumerate(strings):
        prompt.append(string)
        if index < len(children) and children[index]:
            child = children[index]
            prompt.append(child, style=f"underline {session.colors.get(child, 'white')}")

    results = Table.grid(padding=(0, 0, 1, 0))
    for choice in choices or [None]:
        results.add_row(Text(choice or "", style=color))
    for choice in choices:
        if choice:
            session.colors[choice] = color

    table.add_row(prompt, results)
    return table


def debug(
    session: DebugSession,
    *,
    strings: Sequence[str],
    children: Sequence[str],
    choices: Sequence[str | None],
    config: RequestConfig,
) -> None:
    table = build_table(session, strings=strings, children=children, choices=choices, config=config)
    session.counter += 1
    session.write(table)


async def debug_stream(
    session: DebugSession,
    stream: AsyncIterable[Any],
    *,
    strings: Sequence[str],
    children: Sequence[str],
    config: RequestConfig,
) -> list[str]:
    """Consume ``stream`` and redraw a table with the text received so far."""
    texts: list[str] = []
    async for chunk in stream:
        for index, content in chunk_deltas(chunk):
            while len(texts) <= index:
                texts.append("")
            texts[index] += content
        table = build_table(session, strings=strings, children=children, choices=texts, config=config)
        session.update_latest(table)
    session.counter += 1
    _LOGGER.debug("Debug stream finished with %d choice(s)", len(texts))
    return texts
