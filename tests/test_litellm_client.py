from __future__ import annotations

from types import SimpleNamespace

import httpx
import litellm
import openai
import pytest

from gptjazz.config import CompletionRequest
from gptjazz.errors import CompletionServiceError
from gptjazz.providers.litellm import LiteLLMClient, response_choices, to_service_error


def _request(**overrides: object) -> CompletionRequest:
    fields: dict[str, object] = {
        "model": "gpt-3.5-turbo",
        "messages": [{"role": "user", "content": "genre: jazz"}],
    }
    fields.update(overrides)
    return CompletionRequest.model_validate(fields)


def _rate_limited() -> openai.APIStatusError:
    response = httpx.Response(
        429,
        request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"),
        headers={"retry-after": "1"},
    )
    return openai.APIStatusError("Rate limit reached", response=response, body=None)


@pytest.mark.asyncio
async def test_client_forwards_request_fields(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: dict[str, object] = {}

    async def fake_acompletion(**kwargs: object) -> object:
        captured.update(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="X:1"))])

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)

    client = LiteLLMClient(api_key="sk-test", litellm_kwargs={"timeout": 42})
    await client.create(_request(n=2, stream=True))

    assert captured["model"] == "gpt-3.5-turbo"
    assert captured["messages"] == [{"role": "user", "content": "genre: jazz"}]
    assert captured["n"] == 2
    assert captured["stream"] is True
    assert captured["api_key"] == "sk-test"
    assert captured["timeout"] == 42
    assert "temperature" not in captured
    assert "organization" not in captured


@pytest.mark.asyncio
async def test_client_maps_api_errors(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def fake_acompletion(**kwargs: object) -> object:
        _ = kwargs
        raise _rate_limited()

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)

    with pytest.raises(CompletionServiceError) as excinfo:
        await LiteLLMClient().create(_request())

    error = excinfo.value
    assert error.status == 429
    assert error.name == "APIStatusError"
    assert error.message == "Rate limit reached"
    assert error.headers["retry-after"] == "1"
    assert isinstance(error.__cause__, openai.APIStatusError)


@pytest.mark.asyncio
async def test_client_lets_other_errors_through(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def fake_acompletion(**kwargs: object) -> object:
        _ = kwargs
        raise RuntimeError("socket closed")

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)

    with pytest.raises(RuntimeError, match="socket closed"):
        await LiteLLMClient().create(_request())


def test_service_error_defaults_without_status() -> None:
    error = to_service_error(RuntimeError("unexpected"))
    assert error.status == 500
    assert error.headers == {}
    assert error.to_payload() == {
        "name": "RuntimeError",
        "status": 500,
        "headers": {},
        "message": "unexpected",
    }


def test_client_rejects_reserved_kwargs() -> None:
    with pytest.raises(ValueError, match="model, stream"):
        LiteLLMClient(litellm_kwargs={"stream": True, "model": "other", "timeout": 3})


def test_request_requires_messages() -> None:
    with pytest.raises(ValueError):
        _request(messages=[])


def test_response_choices_reads_objects_and_dicts() -> None:
    response = SimpleNamespace(
        choices=[
            SimpleNamespace(message=SimpleNamespace(content="A")),
            SimpleNamespace(message=SimpleNamespace(content=None)),
            SimpleNamespace(message=SimpleNamespace(content="C")),
        ]
    )
    assert response_choices(response, 2) == ["A", None]
    assert response_choices({"choices": [{"message": {"content": "B"}}]}, 1) == ["B"]
    assert response_choices(object(), 1) == []


@pytest.mark.asyncio
async def test_aclose_releases_litellm_clients(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    closed: list[bool] = []

    async def fake_close() -> None:
        closed.append(True)

    monkeypatch.delattr(litellm, "aclose", raising=False)
    monkeypatch.setattr(litellm, "close_litellm_async_clients", fake_close, raising=False)

    await LiteLLMClient().aclose()

    assert closed == [True]


@pytest.mark.asyncio
async def test_aclose_logs_cleanup_failure(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    async def broken_close() -> None:
        raise RuntimeError("already closed")

    monkeypatch.setattr(litellm, "aclose", broken_close, raising=False)

    await LiteLLMClient().aclose()

    assert "LiteLLM close failed" in caplog.text
