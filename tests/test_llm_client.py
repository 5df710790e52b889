from types import SimpleNamespace

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from roadmap_chat.chat_prompts import ROADMAP_OUTPUT_SCHEMA
from roadmap_chat.llm_client import ChatLlmClient
from roadmap_chat.negotiation_errors import CredentialError, ServiceError

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/responses")


class StubResponses:
    def __init__(self, result):
        self.result = result
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def client_returning(result) -> tuple[ChatLlmClient, StubResponses]:
    responses = StubResponses(result)
    stub = SimpleNamespace(responses=responses)
    return ChatLlmClient("gpt-4o-mini", api_key="sk-test", timeout=5, client=stub), responses


def test_invoke_sends_roles_and_strict_schema() -> None:
    resp = SimpleNamespace(
        output_text='  {"isAsking": true, "roadmap": null, "question": "q"}\n',
        usage=SimpleNamespace(input_tokens=10, output_tokens=5, total_tokens=15),
    )
    client, responses = client_returning(resp)

    raw = client.invoke([SystemMessage(content="rules"), HumanMessage(content="hi"), AIMessage(content="yo")])

    assert raw == '{"isAsking": true, "roadmap": null, "question": "q"}'
    assert responses.kwargs["model"] == "gpt-4o-mini"
    assert [m["role"] for m in responses.kwargs["input"]] == ["developer", "user", "assistant"]
    fmt = responses.kwargs["text"]["format"]
    assert fmt["type"] == "json_schema"
    assert fmt["strict"] is True
    assert fmt["schema"] is ROADMAP_OUTPUT_SCHEMA
    assert client.last_usage["total_token_count"] == 15


def test_unexpected_shape_passes_through_as_text() -> None:
    client, _ = client_returning(SimpleNamespace(output_text="not json at all", usage=None))
    assert client.invoke([HumanMessage(content="hi")]) == "not json at all"


def test_missing_key_is_checked_before_any_call() -> None:
    client = ChatLlmClient("gpt-4o-mini", api_key="")
    with pytest.raises(CredentialError):
        client.ensure_credentials()
    with pytest.raises(CredentialError):
        client.invoke([HumanMessage(content="hi")])


def test_timeout_is_a_service_error() -> None:
    client, _ = client_returning(openai.APITimeoutError(request=REQUEST))
    with pytest.raises(ServiceError):
        client.invoke([HumanMessage(content="hi")])


def test_connection_failure_is_a_service_error() -> None:
    client, _ = client_returning(openai.APIConnectionError(request=REQUEST))
    with pytest.raises(ServiceError):
        client.invoke([HumanMessage(content="hi")])


def test_error_status_carries_service_diagnostic() -> None:
    error = openai.APIStatusError(
        "Service Unavailable",
        response=httpx.Response(503, request=REQUEST),
        body={"error": {"message": "The server is overloaded"}},
    )
    client, _ = client_returning(error)
    with pytest.raises(ServiceError) as exc_info:
        client.invoke([HumanMessage(content="hi")])
    assert exc_info.value.diagnostic == "The server is overloaded"
    assert exc_info.value.to_payload()["diagnostic"] == "The server is overloaded"


def test_rejected_key_is_a_credential_error() -> None:
    error = openai.AuthenticationError(
        "Incorrect API key provided",
        response=httpx.Response(401, request=REQUEST),
        body=None,
    )
    client, _ = client_returning(error)
    with pytest.raises(CredentialError):
        client.invoke([HumanMessage(content="hi")])


def test_model_name_is_required() -> None:
    with pytest.raises(ValueError):
        ChatLlmClient("  ", api_key="sk-test")
