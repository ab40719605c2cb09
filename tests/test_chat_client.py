"""Tests for the chat-completion transport and the explanation client."""

import asyncio

import pytest
import requests

from domain.errors import NetworkError, RequestFailed, ValidationError
from knowledge.chat_client import ChatCompletionClient, ChatEndpoint
from knowledge.completion_client import CompletionClient
from knowledge.prompts import EMPTY_RESULT_PLACEHOLDER

ENDPOINT = ChatEndpoint(url="https://llm.example.test/v1/chat/completions", api_key="sk-abc", model="m-1")


def test_explanation_request_shape(session, transport, make_response):
    session.post.return_value = make_response(content="X")
    client = CompletionClient(transport)

    result = asyncio.run(client.complete(endpoint=ENDPOINT, system_prompt="你是助手", query="区块链"))

    assert result == "X"
    session.post.assert_called_once()
    args, kwargs = session.post.call_args
    assert args == (ENDPOINT.url,)
    assert kwargs["headers"] == {"Content-Type": "application/json", "Authorization": "Bearer sk-abc"}
    assert kwargs["json"] == {
        "model": "m-1",
        "messages": [
            {"role": "system", "content": "你是助手"},
            {"role": "user", "content": "请解释：区块链"},
        ],
        "max_tokens": 500,
        "temperature": 0.35,
    }


def test_blank_model_and_prompt_fall_back_to_defaults(session, transport, make_response):
    session.post.return_value = make_response(content="ok")
    client = CompletionClient(transport)
    endpoint = ChatEndpoint(url=ENDPOINT.url, api_key="sk", model="")

    asyncio.run(client.complete(endpoint=endpoint, system_prompt="  ", query="q"))

    payload = session.post.call_args.kwargs["json"]
    assert payload["model"] == "gpt-3.5-turbo"
    assert payload["messages"][0]["content"].startswith("你是一个专业的知识助手")


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"choices": []},
        {"choices": [{"message": {}}]},
        {"choices": [{"message": {"content": None}}]},
        {"choices": "nonsense"},
        None,
    ],
)
def test_missing_content_yields_placeholder(session, transport, make_response, payload):
    session.post.return_value = make_response(payload=payload)
    client = CompletionClient(transport)

    result = asyncio.run(client.complete(endpoint=ENDPOINT, system_prompt="p", query="q"))

    assert result == EMPTY_RESULT_PLACEHOLDER


def test_non_2xx_raises_request_failed(session, transport, make_response):
    session.post.return_value = make_response(401, payload={"error": "bad key"})
    client = CompletionClient(transport)

    with pytest.raises(RequestFailed) as excinfo:
        asyncio.run(client.complete(endpoint=ENDPOINT, system_prompt="p", query="q"))
    assert excinfo.value.status_code == 401


def test_transport_failure_raises_network_error(session, transport):
    cause = requests.exceptions.ConnectionError("connection refused")
    session.post.side_effect = cause
    client = CompletionClient(transport)

    with pytest.raises(NetworkError) as excinfo:
        asyncio.run(client.complete(endpoint=ENDPOINT, system_prompt="p", query="q"))
    assert excinfo.value.cause is cause


def test_session_gets_default_headers(session):
    ChatCompletionClient(session=session)
    assert session.headers["Accept"] == "application/json"


def test_connection_test_sends_hello(session, transport, make_response):
    session.post.return_value = make_response(content="hi")

    asyncio.run(transport.test_connection(ENDPOINT))

    assert session.post.call_args.kwargs["json"] == {
        "model": "m-1",
        "messages": [{"role": "user", "content": "Hello"}],
        "max_tokens": 10,
    }


def test_connection_test_requires_url_and_key(session, transport):
    with pytest.raises(ValidationError):
        asyncio.run(transport.test_connection(ChatEndpoint(url="", api_key="sk")))
    session.post.assert_not_called()


def test_connection_test_reports_http_status(session, transport, make_response):
    session.post.return_value = make_response(503, payload={"error": "down"})

    with pytest.raises(RequestFailed) as excinfo:
        asyncio.run(transport.test_connection(ENDPOINT))
    assert excinfo.value.status_code == 503
