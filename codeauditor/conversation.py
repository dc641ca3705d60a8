"""Conversation history passed to the model on every round."""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """The answer to one ToolCall. Failures are content, never dropped."""

    call_id: str
    content: str
    is_error: bool = False


@dataclass(frozen=True)
class SystemMessage:
    content: str


@dataclass(frozen=True)
class UserInstruction:
    content: str


@dataclass(frozen=True)
class ModelTurn:
    """One model response: optional text plus zero or more tool calls."""

    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()


ConversationMessage = Union[SystemMessage, UserInstruction, ModelTurn, ToolResult]


@dataclass(frozen=True)
class ConversationState:
    """Append-only message log plus the tool schemas declared to the model.

    Appending returns a new state; existing messages are never reordered or
    changed, since this ordering is the model's only memory across rounds.
    """

    messages: tuple[ConversationMessage, ...] = ()
    tools: tuple[dict, ...] = ()

    @classmethod
    def start(cls, system_prompt: str, user_prompt: str, tools: list[dict]) -> "ConversationState":
        """Build the initial state: system prompt, then the task description."""
        return cls(
            messages=(SystemMessage(system_prompt), UserInstruction(user_prompt)),
            tools=tuple(tools),
        )

    def append(self, *messages: ConversationMessage) -> "ConversationState":
        return ConversationState(messages=self.messages + tuple(messages), tools=self.tools)

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def system_prompt(self) -> Optional[str]:
        for message in self.messages:
            if isinstance(message, SystemMessage):
                return message.content
        return None

    @property
    def last_turn(self) -> Optional[ModelTurn]:
        for message in reversed(self.messages):
            if isinstance(message, ModelTurn):
                return message
        return None

    def pending_tool_calls(self) -> tuple[ToolCall, ...]:
        """Tool calls of the latest model turn that have no result yet."""
        answered = set()
        for message in reversed(self.messages):
            if isinstance(message, ToolResult):
                answered.add(message.call_id)
            elif isinstance(message, ModelTurn):
                return tuple(call for call in message.tool_calls if call.id not in answered)
        return ()

    def tool_call_count(self) -> int:
        return sum(len(m.tool_calls) for m in self.messages if isinstance(m, ModelTurn))

    def tool_result_count(self) -> int:
        return sum(1 for m in self.messages if isinstance(m, ToolResult))
