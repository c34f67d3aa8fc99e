from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Callable

import pytest
from fastapi.testclient import TestClient

from gptjazz.errors import CompletionServiceError
from gptjazz.prompts import CONTINUATION_SYSTEM_PROMPT, build_generators
from gptjazz.server import create_app
from gptjazz.settings import Settings
from gptjazz.tag import Tag

PASSAGE = "X:1\nK:C\n|: CDEF GABc :|"


def _client(make_tag: Callable, *args: object, **kwargs: object) -> tuple[TestClient, object]:
    tag, fake = make_tag(*args, **kwargs)
    settings = Settings()
    app = create_app(settings, build_generators(settings, base=tag))
    return TestClient(app), fake


def test_completion_streams_passage_text(make_tag: Callable) -> None:
    client, fake = _client(make_tag, [PASSAGE])

    with client:
        response = client.post("/api/completion", json={"style": "bebop"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == PASSAGE
    request = fake.requests[0]
    assert request.stream is True
    assert request.model == Settings().model
    assert request.messages[-1]["content"] == "Request:###genre: bebop###\nResponse:"


def test_completion_defaults_to_jazz(make_tag: Callable) -> None:
    client, fake = _client(make_tag, [PASSAGE])

    with client:
        client.post("/api/completion", json={})

    assert "genre: jazz" in fake.prompts()[0]


def test_previous_music_selects_continuation(make_tag: Callable) -> None:
    client, fake = _client(make_tag, [PASSAGE])

    with client:
        response = client.post(
            "/api/completion",
            json={"prompt": "swing", "previousMusic": "X:1\nK:G\nGABc|"},
        )

    assert response.status_code == 200
    request = fake.requests[0]
    assert request.messages[0]["content"] == CONTINUATION_SYSTEM_PROMPT
    assert request.messages[-1]["content"] == (
        "Request:###genre: swing\nPrevious passage:X:1\nK:G\nGABc|###\nResponse:"
    )


def test_style_is_validated(make_tag: Callable) -> None:
    client, fake = _client(make_tag, [PASSAGE])

    with client:
        empty = client.post("/api/completion", json={"style": ""})
        too_long = client.post("/api/completion", json={"style": "x" * 1001})

    assert empty.status_code == 422
    assert too_long.status_code == 422
    assert fake.calls == 0


def test_service_error_is_returned_as_json(make_tag: Callable) -> None:
    error = CompletionServiceError(
        "Rate limit reached",
        name="RateLimitError",
        status=429,
        headers={"retry-after": "1"},
    )
    client, _ = _client(make_tag, error=error)

    with client:
        response = client.post("/api/completion", json={"style": "jazz"})

    assert response.status_code == 429
    assert response.json() == {
        "name": "RateLimitError",
        "status": 429,
        "headers": {"retry-after": "1"},
        "message": "Rate limit reached",
    }


def test_healthz_reports_model(make_tag: Callable) -> None:
    client, _ = _client(make_tag)

    with client:
        response = client.get("/healthz")

    assert response.json() == {"status": "ok", "model": Settings().model}


def test_shutdown_closes_completion_client(make_tag: Callable) -> None:
    client, fake = _client(make_tag, [PASSAGE])

    with client:
        client.post("/api/completion", json={"style": "jazz"})
        assert fake.closed == 0

    assert fake.closed == 1


class _SlowStreamClient:
    """Streams a passage in small chunks and records how far it was read."""

    def __init__(self, pieces: list[str], chunk: Callable[..., object]) -> None:
        self.pieces = pieces
        self._chunk = chunk
        self.pulled = 0
        self.finished = False

    async def create(self, request: object) -> object:
        _ = request
        return self._stream()

    async def _stream(self) -> AsyncIterator[object]:
        for piece in self.pieces:
            await asyncio.sleep(0)
            self.pulled += 1
            yield self._chunk(piece)
        self.finished = True


@pytest.mark.asyncio
async def test_upstream_is_drained_after_client_disconnects(debug_session, chunk: Callable) -> None:
    pieces = ["X:1\n", "K:C\n", "|CD", "EF|", "GA", "Bc|"]
    upstream = _SlowStreamClient(pieces, chunk)
    settings = Settings()
    app = create_app(settings, build_generators(settings, base=Tag(client=upstream, session=debug_session)))

    body = json.dumps({"style": "jazz"}).encode()
    pending = [{"type": "http.request", "body": body, "more_body": False}]
    first_chunk_sent = asyncio.Event()
    sent: list[dict] = []

    async def receive() -> dict:
        if pending:
            return pending.pop(0)
        await first_chunk_sent.wait()
        return {"type": "http.disconnect"}

    async def send(message: dict) -> None:
        sent.append(message)
        if message["type"] == "http.response.body" and message.get("body"):
            first_chunk_sent.set()

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/api/completion",
        "raw_path": b"/api/completion",
        "root_path": "",
        "query_string": b"",
        "headers": [
            (b"content-type", b"application/json"),
            (b"content-length", str(len(body)).encode()),
        ],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }

    await app(scope, receive, send)
    for _ in range(100):
        if upstream.finished:
            break
        await asyncio.sleep(0)

    streamed = b"".join(message.get("body", b"") for message in sent if message["type"] == "http.response.body")
    assert streamed.startswith(b"X:1\n")
    assert upstream.pulled == len(pieces)
    assert upstream.finished
