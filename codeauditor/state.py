"""State models for the LangGraph agent loop."""

from dataclasses import dataclass
from enum import Enum
from operator import add
from typing import Annotated, Optional, TypedDict

from codeauditor.conversation import ConversationMessage


class LoopPhase(str, Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    FINISHED = "finished"
    ABORTED = "aborted"


class TerminationReason(str, Enum):
    """Why a run stopped. Checked in this order after every round."""

    FINISHED = "finished"  # model called finish_analysis
    MAX_ROUNDS = "max_rounds"
    MAX_TOOL_CALLS = "max_tool_calls"
    STALLED = "stalled"  # consecutive rounds without tool calls
    BACKEND_FAILURE = "backend_failure"
    CANCELLED = "cancelled"

    @property
    def phase(self) -> LoopPhase:
        if self in (TerminationReason.BACKEND_FAILURE, TerminationReason.CANCELLED):
            return LoopPhase.ABORTED
        return LoopPhase.FINISHED

    @property
    def description(self) -> str:
        return {
            TerminationReason.FINISHED: "The model completed the analysis",
            TerminationReason.MAX_ROUNDS: "Round budget exhausted before the model finished",
            TerminationReason.MAX_TOOL_CALLS: "Tool call budget exhausted before the model finished",
            TerminationReason.STALLED: "The model stopped calling tools without finishing",
            TerminationReason.BACKEND_FAILURE: "The model backend failed",
            TerminationReason.CANCELLED: "The run was cancelled",
        }[self]


class LoopState(TypedDict):
    """The state object passed through the LangGraph workflow.

    Attributes:
        messages: Append-only conversation log (reducer concatenates updates)
        round_count: Completed rounds (model request + tool execution)
        tool_call_count: Tool calls executed so far
        idle_rounds: Consecutive rounds in which the model called no tools
        terminated: Set once, when a termination condition matches
        termination_reason: TerminationReason value once terminated
        error: Backend error message for aborted runs
        closing_summary: Summary passed to finish_analysis, if any
    """

    messages: Annotated[list[ConversationMessage], add]
    round_count: int
    tool_call_count: int
    idle_rounds: int
    terminated: bool
    termination_reason: Optional[str]
    error: Optional[str]
    closing_summary: Optional[str]


@dataclass(frozen=True)
class RunState:
    """Immutable snapshot of a finished run, handed to report synthesis."""

    round_count: int
    tool_call_count: int
    elapsed_time: float
    terminated: bool
    termination_reason: Optional[TerminationReason]
    error: Optional[str] = None
    closing_summary: Optional[str] = None

    @property
    def phase(self) -> LoopPhase:
        if not self.terminated or self.termination_reason is None:
            return LoopPhase.RUNNING
        return self.termination_reason.phase

    @property
    def aborted(self) -> bool:
        return self.phase is LoopPhase.ABORTED

    @property
    def succeeded(self) -> bool:
        return self.termination_reason is TerminationReason.FINISHED
