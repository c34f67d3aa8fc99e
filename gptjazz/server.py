from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .constants import DEFAULT_STYLE
from .errors import CompletionServiceError
from .prompts import Generators, build_generators, close_generators, passage_prompt
from .settings import Settings
from .streaming import drain_stream, iter_text, tee

_LOGGER = logging.getLogger("gptjazz.server")


class CompletionBody(BaseModel):
    style: str = Field(
        default=DEFAULT_STYLE,
        min_length=1,
        max_length=1000,
        validation_alias=AliasChoices("style", "prompt"),
    )
    previous: str | None = Field(
        default=None,
        validation_alias=AliasChoices("previous", "previousMusic"),
    )

    model_config = ConfigDict(extra="ignore")


def _log_drain_result(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _LOGGER.warning("Background drain failed: %s", exc, exc_info=exc)


def create_app(settings: Settings | None = None, generators: Generators | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    generators = generators or build_generators(settings)
    background: set[asyncio.Task[Any]] = set()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        if background:
            _LOGGER.info("Waiting for %d background drain(s)", len(background))
            await asyncio.gather(*background, return_exceptions=True)
        await close_generators(generators)

    app = FastAPI(title="GPT Plays Jazz", lifespan=lifespan)
    app.state.settings = settings
    app.state.generators = generators
    app.state.background = background

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok", "model": settings.model}

    @app.post("/api/completion")
    async def completion(body: CompletionBody) -> Response:
        value = passage_prompt(generators, body.style, body.previous)
        try:
            result = await value.get()
        except CompletionServiceError as exc:
            _LOGGER.warning("Completion service error %s (%s): %s", exc.name, exc.status, exc.message)
            return JSONResponse(exc.to_payload(), status_code=exc.status)

        if not hasattr(result, "__aiter__"):
            return PlainTextResponse("" if result is None else str(result))

        # The upstream completion keeps running if the browser goes away; the
        # second copy reads it to the end so the connection is released cleanly.
        client_copy, drain_copy = tee(result)
        task = asyncio.ensure_future(drain_stream(drain_copy))
        background.add(task)
        task.add_done_callback(background.discard)
        task.add_done_callback(_log_drain_result)
        _LOGGER.info("Streaming passage style=%s continuation=%s", body.style, bool(body.previous))
        return StreamingResponse(iter_text(client_copy), media_type="text/plain; charset=utf-8")

    return app
