"""Replay of operations recorded against a value that had not resolved yet."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Callable

from .config import ParseFunction, RecordedCall
from .errors import UnsupportedOperationError

if TYPE_CHECKING:
    from .gpt_string import GPTString

_LOGGER = logging.getLogger("gptjazz.chain")


def _slice(value: str, start: int | None = None, end: int | None = None) -> str:
    return value[start:end]


def _concat(value: str, *others: object) -> str:
    return value + "".join(str(other) for other in others)


_EXTRA_OPS: dict[str, Callable[..., Any]] = {
    "slice": _slice,
    "substring": _slice,
    "concat": _concat,
    "length": len,
    "trim": str.strip,
    "trim_start": str.lstrip,
    "trim_end": str.rstrip,
}

# Text operations a deferred value can record. Closed on purpose: anything
# outside this table is not a chainable operation.
TEXT_OPS: dict[str, Callable[..., Any]] = {
    name: getattr(str, name)
    for name in (
        "capitalize",
        "casefold",
        "center",
        "count",
        "endswith",
        "expandtabs",
        "find",
        "format",
        "index",
        "isalnum",
        "isalpha",
        "isdigit",
        "islower",
        "isspace",
        "isupper",
        "join",
        "ljust",
        "lower",
        "lstrip",
        "partition",
        "removeprefix",
        "removesuffix",
        "replace",
        "rfind",
        "rjust",
        "rpartition",
        "rsplit",
        "rstrip",
        "split",
        "splitlines",
        "startswith",
        "strip",
        "swapcase",
        "title",
        "upper",
        "zfill",
    )
}
TEXT_OPS.update(_EXTRA_OPS)


def is_text_op(name: str) -> bool:
    return name in TEXT_OPS


def _is_gpt_string(value: object) -> bool:
    return getattr(type(value), "_is_gpt_string", False) is True


async def get_string(value: str | GPTString | Any) -> Any:
    """Plain values pass through; deferred values are resolved."""
    if _is_gpt_string(value):
        return await value.get()
    return value


async def apply_parse(parse: ParseFunction | None, value: Any) -> Any:
    if parse is None:
        return value
    result = parse(value)
    if inspect.isawaitable(result):
        result = await result
    return result


async def process_call_stack(call_stack: Sequence[RecordedCall], value: Any) -> Any:
    """Fold ``call_stack`` over ``value`` in recorded order."""
    current = value
    for call in call_stack:
        if not isinstance(current, str):
            # A branch or an op like ``split`` produced a non-text value; the
            # rest of the chain has nothing to act on.
            _LOGGER.debug("Skipping %s on non-text value %r", call.method, type(current).__name__)
            return current
        match call.method:
            case "is":
                test, then, otherwise = _branch_args(call)
                if await get_string(test) == current:
                    current = await get_string(then)
                else:
                    current = await get_string(otherwise)
            case "includes":
                test, then, otherwise = _branch_args(call)
                needle = await get_string(test)
                if isinstance(needle, str) and needle in current:
                    current = await get_string(then)
                else:
                    current = await get_string(otherwise)
            case method if method in TEXT_OPS:
                current = TEXT_OPS[method](current, *call.args)
            case method:
                raise UnsupportedOperationError(method, target="GPTString")
    return current


def _branch_args(call: RecordedCall) -> tuple[Any, Any, Any]:
    args = tuple(call.args) + (None,) * (3 - len(call.args))
    return args[0], args[1], args[2]


async def process_array_call_stack(
    call: RecordedCall | None,
    call_stack: Sequence[RecordedCall],
    values: Sequence[Any],
    parse: ParseFunction | None = None,
) -> Any:
    """Reduce several choices to one value with the recorded ``first``/``each``."""
    method = call.method if call is not None else None
    if method == "first":
        if not values:
            return None
        return await apply_parse(parse, await process_call_stack(call_stack, values[0]))
    if method == "each":
        delimiter = call.args[0] if call.args and call.args[0] is not None else ""
        results = []
        for value in values:
            replayed = await process_call_stack(call_stack, value)
            results.append(await apply_parse(parse, replayed))
        return str(delimiter).join("" if result is None else str(result) for result in results)
    raise UnsupportedOperationError(method)
