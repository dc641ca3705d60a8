"""LLM abstraction layer for Anthropic Claude models with tool calling."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional, Protocol

import anthropic
from anthropic import Anthropic

from codeauditor.config import RunConfig
from codeauditor.constants import SUPPORTED_MODELS
from codeauditor.conversation import (
    ConversationState,
    ModelTurn,
    SystemMessage,
    ToolCall,
    ToolResult,
    UserInstruction,
)
from codeauditor.errors import BackendError, ConfigError

logger = logging.getLogger(__name__)

# HTTP statuses worth retrying with the same request
RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504, 529}

# Anthropic-compatible servers that do not check keys still require one in the client
PLACEHOLDER_API_KEY = "not-required"


class LLMClient(Protocol):
    """Anything that can answer a conversation with a model turn."""

    def send(self, conversation: ConversationState) -> ModelTurn:
        """Submit the conversation and return the model's next turn.

        Raises:
            BackendError: If the backend is unreachable, times out or answers
                with something that cannot be interpreted
        """
        ...


@dataclass
class ModelDescriptor:
    """Descriptor for an LLM model."""

    provider: Literal["anthropic"]
    name: str
    max_output_tokens: int
    temperature: float = 0.1


class LLM:
    """Anthropic Claude LLM interface."""

    def __init__(
        self,
        descriptor: ModelDescriptor,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        timeout: float = 120,
    ):
        """Initialize LLM client.

        Args:
            descriptor: Model descriptor
            api_key: Anthropic API key
            base_url: Optional Anthropic-compatible endpoint
            timeout: Per-request timeout in seconds
        """
        self.descriptor = descriptor
        self.base_url = base_url
        self.timeout = timeout

        if descriptor.provider != "anthropic":
            raise ValueError(f"Only Anthropic models are supported. Got: {descriptor.provider}")

        # Retries are owned by the agent loop so every attempt is visible there
        self.client = Anthropic(
            api_key=api_key or PLACEHOLDER_API_KEY,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    @property
    def model(self) -> str:
        return self.descriptor.name

    def send(self, conversation: ConversationState) -> ModelTurn:
        """Send the conversation and parse text and tool calls from the reply."""
        kwargs = self._build_request(conversation)
        logger.debug("Sending %d messages to %s", len(kwargs["messages"]), self.descriptor.name)

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APITimeoutError as e:
            raise BackendError("Model request timed out", f"after {self.timeout}s", retryable=True) from e
        except anthropic.APIConnectionError as e:
            raise BackendError("Model backend unreachable", str(e), retryable=True) from e
        except anthropic.APIStatusError as e:
            raise BackendError(
                f"Model backend returned HTTP {e.status_code}",
                str(e),
                retryable=e.status_code in RETRYABLE_STATUS,
            ) from e
        except anthropic.APIError as e:
            # Response bodies the SDK could not validate
            raise BackendError("Malformed model response", str(e)) from e

        return self._parse_response(response)

    def _build_request(self, conversation: ConversationState) -> dict[str, Any]:
        """Convert the conversation into Messages API keyword arguments."""
        system_blocks = [
            {"type": "text", "text": m.content, "cache_control": {"type": "ephemeral"}}
            for m in conversation.messages
            if isinstance(m, SystemMessage)
        ]

        chat_messages: list[dict[str, Any]] = []
        for message in conversation.messages:
            if isinstance(message, SystemMessage):
                continue
            role, blocks = self._to_blocks(message)
            # The API expects alternating roles; merge consecutive same-role messages
            if chat_messages and chat_messages[-1]["role"] == role:
                chat_messages[-1]["content"].extend(blocks)
            else:
                chat_messages.append({"role": role, "content": blocks})

        kwargs: dict[str, Any] = {
            "model": self.descriptor.name,
            "messages": chat_messages,
            "temperature": self.descriptor.temperature,
            "max_tokens": self.descriptor.max_output_tokens,
        }

        if system_blocks:
            kwargs["system"] = system_blocks

        if conversation.tools:
            kwargs["tools"] = self._convert_tools_to_anthropic(list(conversation.tools))

        return kwargs

    @staticmethod
    def _to_blocks(message) -> tuple[str, list[dict[str, Any]]]:
        if isinstance(message, UserInstruction):
            return "user", [{"type": "text", "text": message.content}]

        if isinstance(message, ToolResult):
            block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": message.call_id,
                "content": message.content,
            }
            if message.is_error:
                block["is_error"] = True
            return "user", [block]

        if isinstance(message, ModelTurn):
            content: list[dict[str, Any]] = []
            if message.text:
                content.append({"type": "text", "text": message.text})
            for call in message.tool_calls:
                content.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments,
                })
            if not content:
                # Empty assistant turns are rejected by the API
                content.append({"type": "text", "text": "(no response)"})
            return "assistant", content

        raise TypeError(f"Unsupported message type: {type(message).__name__}")

    @staticmethod
    def _parse_response(response: Any) -> ModelTurn:
        """Extract text and tool calls from a Messages API response."""
        blocks = getattr(response, "content", None)
        if blocks is None:
            raise BackendError("Malformed model response", "missing content")

        text_parts = []
        tool_calls = []
        for block in blocks:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(block.text)
            elif block_type == "tool_use":
                arguments = block.input
                if isinstance(arguments, str):
                    try:
                        arguments = json.loads(arguments)
                    except json.JSONDecodeError:
                        arguments = {}
                if not isinstance(arguments, dict):
                    arguments = {}
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=arguments))

        return ModelTurn(text="".join(text_parts), tool_calls=tuple(tool_calls))

    def _convert_tools_to_anthropic(self, openai_tools: list[dict]) -> list[dict]:
        """Convert OpenAI tool format to Anthropic format.

        Args:
            openai_tools: List of OpenAI tool definitions

        Returns:
            List of Anthropic tool definitions
        """
        anthropic_tools = []
        for tool in openai_tools:
            if tool["type"] == "function":
                func = tool["function"]
                anthropic_tools.append({
                    "name": func["name"],
                    "description": func.get("description", ""),
                    "input_schema": func.get("parameters", {"type": "object", "properties": {}}),
                })
        return anthropic_tools

    @classmethod
    def parse_model_string(cls, model_str: str) -> ModelDescriptor:
        """Parse model string into ModelDescriptor.

        Known aliases (e.g. "anthropic:claude-sonnet-4-5") map to pinned model
        ids; any other string is passed to the backend as the model name.

        Args:
            model_str: Model alias or backend model name

        Returns:
            ModelDescriptor
        """
        if model_str in SUPPORTED_MODELS:
            model_config = SUPPORTED_MODELS[model_str]
            return ModelDescriptor(
                provider=model_config["provider"],
                name=model_config["name"],
                max_output_tokens=model_config["max_output_tokens"],
            )

        name = model_str.split(":", 1)[1] if model_str.startswith("anthropic:") else model_str
        if not name:
            raise ConfigError(f"Invalid model name: {model_str!r}")
        return ModelDescriptor(provider="anthropic", name=name, max_output_tokens=8192)

    @classmethod
    def list_models(cls) -> list[str]:
        """List all model aliases.

        Returns:
            List of model strings
        """
        return list(SUPPORTED_MODELS.keys())


def build_client(config: RunConfig) -> LLM:
    """Create the backend client described by a run configuration."""
    descriptor = LLM.parse_model_string(config.model_name)
    descriptor.temperature = config.temperature
    descriptor.max_output_tokens = min(descriptor.max_output_tokens, config.max_output_tokens)
    return LLM(descriptor, config.api_key, base_url=config.backend_url, timeout=config.timeout)
