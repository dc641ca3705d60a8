"""Tests for the Anthropic client adapter."""

from types import SimpleNamespace

import anthropic
import httpx
import pytest

from codeauditor.config import RunConfig
from codeauditor.conversation import ConversationState, ModelTurn, ToolCall, ToolResult, UserInstruction
from codeauditor.errors import BackendError, ConfigError
from codeauditor.llm import LLM, ModelDescriptor, build_client

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
TOOLS = [{
    "type": "function",
    "function": {
        "name": "read_file",
        "description": "Read a file",
        "parameters": {"type": "object", "properties": {"path": {"type": "string"}}, "required": ["path"]},
    },
}]


class StubMessages:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.response


def make_llm(response=None, error=None):
    llm = LLM(ModelDescriptor(provider="anthropic", name="test-model", max_output_tokens=1024), "key")
    stub = StubMessages(response, error)
    llm.client = SimpleNamespace(messages=stub)
    return llm, stub


def conversation():
    state = ConversationState.start("You audit code.", "Audit it.", TOOLS)
    return state.append(
        ModelTurn(text="Reading.", tool_calls=(
            ToolCall("t1", "read_file", {"path": "a.rs"}),
            ToolCall("t2", "read_file", {"path": "b.rs"}),
        )),
        ToolResult("t1", "File: a.rs"),
        ToolResult("t2", "NotFoundError: File not found: b.rs", is_error=True),
        UserInstruction("Continue."),
    )


def test_parse_model_string():
    descriptor = LLM.parse_model_string("anthropic:claude-sonnet-4-5")
    assert descriptor.name == "claude-sonnet-4-5-20250929"

    custom = LLM.parse_model_string("my-local-model")
    assert custom.name == "my-local-model"
    assert custom.provider == "anthropic"

    with pytest.raises(ConfigError):
        LLM.parse_model_string("anthropic:")


def test_build_client_uses_config():
    config = RunConfig(backend_url="http://localhost:8080", temperature=0.5, max_output_tokens=2048, timeout=30)
    client = build_client(config)

    assert client.descriptor.temperature == 0.5
    assert client.descriptor.max_output_tokens == 2048
    assert client.timeout == 30
    assert client.base_url == "http://localhost:8080"


def test_request_conversion():
    """Tool results become user tool_result blocks; same-role messages are merged."""
    response = SimpleNamespace(content=[SimpleNamespace(type="text", text="ok")])
    llm, stub = make_llm(response)

    llm.send(conversation())
    kwargs = stub.kwargs

    assert kwargs["model"] == "test-model"
    assert kwargs["system"][0]["text"] == "You audit code."
    assert kwargs["system"][0]["cache_control"] == {"type": "ephemeral"}
    assert kwargs["tools"][0]["name"] == "read_file"
    assert kwargs["tools"][0]["input_schema"]["required"] == ["path"]

    roles = [m["role"] for m in kwargs["messages"]]
    assert roles == ["user", "assistant", "user"]
    assistant = kwargs["messages"][1]["content"]
    assert [block["type"] for block in assistant] == ["text", "tool_use", "tool_use"]
    results = kwargs["messages"][2]["content"]
    assert [block["type"] for block in results] == ["tool_result", "tool_result", "text"]
    assert results[1]["is_error"] is True
    assert "is_error" not in results[0]


def test_response_parsing():
    response = SimpleNamespace(content=[
        SimpleNamespace(type="text", text="Let me look."),
        SimpleNamespace(type="tool_use", id="tu_1", name="list_files", input={"directory": "."}),
    ])
    llm, _ = make_llm(response)

    turn = llm.send(conversation())

    assert turn.text == "Let me look."
    assert turn.tool_calls == (ToolCall("tu_1", "list_files", {"directory": "."}),)


def test_malformed_response_is_not_retryable():
    llm, _ = make_llm(SimpleNamespace(content=None))

    with pytest.raises(BackendError) as excinfo:
        llm.send(conversation())
    assert not excinfo.value.retryable



def test_unvalidated_response_body_is_backend_error():
    response = httpx.Response(200, request=REQUEST)
    llm, _ = make_llm(error=anthropic.APIResponseValidationError(response=response, body={"content": 3}))

    with pytest.raises(BackendError, match="Malformed model response") as excinfo:
        llm.send(conversation())
    assert not excinfo.value.retryable

def test_timeout_is_retryable():
    llm, _ = make_llm(error=anthropic.APITimeoutError(request=REQUEST))

    with pytest.raises(BackendError, match="timed out") as excinfo:
        llm.send(conversation())
    assert excinfo.value.retryable


def test_connection_error_is_retryable():
    llm, _ = make_llm(error=anthropic.APIConnectionError(request=REQUEST))

    with pytest.raises(BackendError) as excinfo:
        llm.send(conversation())
    assert excinfo.value.retryable


@pytest.mark.parametrize("status,retryable", [(429, True), (503, True), (400, False), (401, False)])
def test_status_errors(status, retryable):
    response = httpx.Response(status, request=REQUEST)
    error = anthropic.APIStatusError("failed", response=response, body=None)
    llm, _ = make_llm(error=error)

    with pytest.raises(BackendError, match=f"HTTP {status}") as excinfo:
        llm.send(conversation())
    assert excinfo.value.retryable is retryable
