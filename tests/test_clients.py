import asyncio

import aiohttp
import pytest

from studio.completion import ANALYZE_FAILED, CompletionClient, extract_content
from studio.dispatcher import InferenceDispatcher
from studio.errors import MalformedResponseError, TransportError
from studio.typing import InferenceRequest

from conftest import FakeResponse, FakeSession, image_response, json_response

COMPLETION_URL = "https://api.groq.example/openai/v1/chat/completions"


def completion_body(content="Looks like a grocery list."):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_analyze_content_request_shape():
    session = FakeSession(post=[json_response(completion_body())])
    client = CompletionClient(COMPLETION_URL, api_key="key", session=session)

    result = asyncio.run(client.analyze_content("eggs, milk", "llama-3.1-8b-instant"))

    assert result.text == "Looks like a grocery list."
    assert result.source == "completion"
    _, url, kwargs = session.calls[0]
    assert url == COMPLETION_URL
    assert kwargs["headers"]["Authorization"] == "Bearer key"
    body = kwargs["json"]
    assert body["model"] == "llama-3.1-8b-instant"
    assert body["temperature"] == 0.5
    assert body["max_tokens"] == 1000
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][1]["content"].endswith("provide insights: eggs, milk")


def test_completion_http_500_is_user_facing_error():
    session = FakeSession(post=[json_response({"error": "overloaded"}, status=500)])
    client = CompletionClient(COMPLETION_URL, session=session)

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(client.analyze_content("text", "m"))
    assert exc_info.value.user_message == ANALYZE_FAILED
    assert exc_info.value.upstream_status == 500


def test_completion_network_error():
    session = FakeSession(post=[FakeResponse(raises=aiohttp.ClientConnectionError("reset"))])
    client = CompletionClient(COMPLETION_URL, session=session)

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(client.analyze_content("text", "m"))
    assert exc_info.value.user_message == ANALYZE_FAILED


@pytest.mark.parametrize(
    "payload",
    [{}, {"choices": []}, {"choices": [{"message": {}}]}, {"choices": [{"message": {"content": 3}}]}],
)
def test_extract_content_rejects_bad_shapes(payload):
    with pytest.raises(MalformedResponseError):
        extract_content(payload)


def test_completion_invalid_json_keeps_user_message():
    session = FakeSession(post=[FakeResponse(status=200, body=b"<html>oops</html>")])
    client = CompletionClient(COMPLETION_URL, session=session)

    with pytest.raises(MalformedResponseError) as exc_info:
        asyncio.run(client.analyze_content("text", "m"))
    assert exc_info.value.user_message == ANALYZE_FAILED


def test_dispatch_image_returns_bytes():
    session = FakeSession(post=[image_response(b"binary")])
    dispatcher = InferenceDispatcher("https://hf.example/", api_token="tok", session=session)

    result = asyncio.run(dispatcher.dispatch(InferenceRequest(prompt="cat", model="org/img")))

    assert result.kind == "image"
    assert result.data == b"binary"
    assert result.content_type == "image/png"
    _, url, kwargs = session.calls[0]
    assert url == "https://hf.example/models/org/img"
    assert kwargs["json"] == {"inputs": "cat"}
    assert kwargs["headers"]["Authorization"] == "Bearer tok"


def test_dispatch_non_success_names_status():
    session = FakeSession(post=[json_response({"error": "rate limited"}, status=429)])
    dispatcher = InferenceDispatcher("https://hf.example", session=session)

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(dispatcher.dispatch(InferenceRequest(prompt="cat", model="m")))
    assert "429" in str(exc_info.value)
    assert "429" in exc_info.value.user_message


def test_dispatch_image_without_image_type_uses_default():
    session = FakeSession(post=[FakeResponse(status=200, body=b"raw", headers={})])
    dispatcher = InferenceDispatcher("https://hf.example", session=session)

    result = asyncio.run(dispatcher.dispatch(InferenceRequest(prompt="cat", model="m")))

    assert result.content_type == "image/jpeg"


def test_dispatch_empty_image_is_malformed():
    session = FakeSession(post=[image_response(b"")])
    dispatcher = InferenceDispatcher("https://hf.example", session=session)

    with pytest.raises(MalformedResponseError):
        asyncio.run(dispatcher.dispatch(InferenceRequest(prompt="cat", model="m")))


def test_dispatch_text_reads_generated_text():
    session = FakeSession(post=[json_response([{"generated_text": "hello there"}])])
    dispatcher = InferenceDispatcher("https://hf.example", session=session)

    result = asyncio.run(
        dispatcher.dispatch(InferenceRequest(prompt="hello", model="gpt2"), kind="text")
    )

    assert result.kind == "text"
    assert result.text == "hello there"
