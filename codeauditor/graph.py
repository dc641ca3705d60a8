"""LangGraph orchestration of the analysis agent loop."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from langgraph.errors import GraphRecursionError
from langgraph.graph import END, StateGraph

from codeauditor.config import RunConfig
from codeauditor.conversation import (
    ConversationState,
    ModelTurn,
    SystemMessage,
    ToolCall,
    ToolResult,
    UserInstruction,
)
from codeauditor.errors import BackendError, BudgetExceededError
from codeauditor.llm import LLMClient
from codeauditor.state import LoopPhase, LoopState, RunState, TerminationReason
from codeauditor.tools.registry import ToolRegistry
from codeauditor.utils.logging import SessionLogger

logger = logging.getLogger(__name__)

CONTINUATION_PROMPT = (
    "No tool was called. Continue the audit with the tools, or call finish_analysis "
    "if the review is complete."
)

ToolCallback = Callable[[ToolCall, ToolResult], None]


@dataclass(frozen=True)
class LoopResult:
    """Final run state plus the full conversation that produced it."""

    run_state: RunState
    conversation: ConversationState


class AgentLoop:
    """Drives model rounds and tool execution until a termination condition matches.

    The loop is a two-node LangGraph workflow: ``model`` sends the conversation
    to the backend, ``tools`` executes the returned calls in order and checks
    the termination conditions. Each pass through both nodes is one round.
    """

    def __init__(
        self,
        client: LLMClient,
        registry: ToolRegistry,
        config: RunConfig,
        transcript: Optional[SessionLogger] = None,
        on_tool_call: Optional[ToolCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the loop.

        Args:
            client: Model backend
            registry: Tool registry bound to this run's tree and aggregator
            config: Immutable run configuration (budgets, retries)
            transcript: Optional NDJSON transcript writer
            on_tool_call: Called after each executed tool call (console progress)
            sleep: Used between backend retries
        """
        self.client = client
        self.registry = registry
        self.config = config
        self.transcript = transcript
        self.on_tool_call = on_tool_call
        self._sleep = sleep
        self._tools = tuple(registry.schemas())
        self._cancelled = threading.Event()
        self.phase = LoopPhase.INITIALIZING
        # Results and executed-call count of the round in progress, so an
        # interrupt inside the tools node keeps what already ran
        self._round_results: Optional[list] = None
        self._round_tool_calls = 0

    def build_graph(self):
        """Build the LangGraph workflow.

        Returns:
            Compiled StateGraph
        """
        workflow = StateGraph(LoopState)

        workflow.add_node("model", self.model_node)
        workflow.add_node("tools", self.tools_node)

        workflow.set_entry_point("model")
        workflow.add_conditional_edges("model", self._route, {"continue": "tools", "end": END})
        workflow.add_conditional_edges("tools", self._route, {"continue": "model", "end": END})

        return workflow.compile()

    def cancel(self) -> None:
        """Request a stop before the next backend request."""
        self._cancelled.set()

    def run(self, system_prompt: str, user_prompt: str) -> LoopResult:
        """Run the loop to completion.

        Args:
            system_prompt: System prompt (instructions and tool overview)
            user_prompt: Task description

        Returns:
            LoopResult with the final RunState and conversation
        """
        conversation = ConversationState.start(system_prompt, user_prompt, list(self._tools))
        initial: LoopState = {
            "messages": list(conversation.messages),
            "round_count": 0,
            "tool_call_count": 0,
            "idle_rounds": 0,
            "terminated": False,
            "termination_reason": None,
            "error": None,
            "closing_summary": None,
        }
        for message in initial["messages"]:
            self._record(message)

        graph = self.build_graph()
        # Two nodes per round, plus headroom for the final routing step
        recursion_limit = 2 * self.config.max_rounds + 4

        self._round_results = None
        self.phase = LoopPhase.RUNNING
        start_time = time.monotonic()
        final = dict(initial)

        try:
            for snapshot in graph.stream(
                initial, config={"recursion_limit": recursion_limit}, stream_mode="values"
            ):
                final = snapshot
        except KeyboardInterrupt:
            logger.warning("Interrupted, stopping the analysis")
            final = dict(final, terminated=True, termination_reason=TerminationReason.CANCELLED.value)
            # Only merge when the tools node's update was never committed
            if self._round_results is not None and isinstance(final["messages"][-1], ModelTurn):
                final["messages"] = list(final["messages"]) + self._round_results
                final["round_count"] = final["round_count"] + 1
                final["tool_call_count"] = self._round_tool_calls
        except GraphRecursionError:
            logger.warning("Round limit reached inside the graph runtime")
            final = dict(final, terminated=True, termination_reason=TerminationReason.MAX_ROUNDS.value)

        elapsed = time.monotonic() - start_time

        messages = list(final["messages"])
        conversation = ConversationState(tuple(messages), self._tools)
        dangling = conversation.pending_tool_calls()
        if dangling:
            results = [
                ToolResult(call.id, "Cancelled: the run stopped before this call was executed", is_error=True)
                for call in dangling
            ]
            for result in results:
                self._record(result)
            conversation = conversation.append(*results)

        reason = final.get("termination_reason")
        run_state = RunState(
            round_count=final["round_count"],
            tool_call_count=final["tool_call_count"],
            elapsed_time=elapsed,
            terminated=True,
            termination_reason=TerminationReason(reason) if reason else TerminationReason.STALLED,
            error=final.get("error"),
            closing_summary=final.get("closing_summary"),
        )
        self.phase = run_state.phase

        logger.info(
            "Loop ended after %d rounds and %d tool calls: %s",
            run_state.round_count,
            run_state.tool_call_count,
            run_state.termination_reason.value,
        )
        if self.transcript:
            self.transcript.save_run_state(run_state)

        return LoopResult(run_state=run_state, conversation=conversation)

    def model_node(self, state: LoopState) -> dict:
        """Send the conversation to the model and append its turn.

        Args:
            state: Current loop state

        Returns:
            State update
        """
        self._round_results = None
        if self._cancelled.is_set():
            logger.info("Cancellation requested, not sending another request")
            return {"terminated": True, "termination_reason": TerminationReason.CANCELLED.value}

        conversation = ConversationState(tuple(state["messages"]), self._tools)
        logger.debug("Round %d: sending %d messages", state["round_count"] + 1, len(conversation))

        try:
            turn = self._send_with_retries(conversation)
        except BackendError as e:
            logger.error("Backend failure: %s", e)
            return {
                "terminated": True,
                "termination_reason": TerminationReason.BACKEND_FAILURE.value,
                "error": str(e),
            }

        self._record(turn)
        return {"messages": [turn]}

    def tools_node(self, state: LoopState) -> dict:
        """Execute the latest turn's tool calls and check termination.

        Args:
            state: Current loop state

        Returns:
            State update
        """
        turn = state["messages"][-1]
        calls = turn.tool_calls if isinstance(turn, ModelTurn) else ()

        results: list = []
        tool_call_count = state["tool_call_count"]
        self._round_results = results
        self._round_tool_calls = tool_call_count
        finished = False
        closing_summary = state["closing_summary"]

        for call in calls:
            executed = False
            if self._cancelled.is_set():
                result = ToolResult(call.id, "Cancelled: the run was stopped", is_error=True)
            else:
                try:
                    self._charge_tool_call(tool_call_count)
                except BudgetExceededError as e:
                    logger.info("Tool call %s not executed: %s", call.name, e)
                    result = ToolResult(call.id, f"BudgetExceededError: {e}; call not executed", is_error=True)
                else:
                    outcome = self.registry.execute(call)
                    executed = True
                    tool_call_count += 1
                    self._round_tool_calls = tool_call_count
                    result = outcome.result
                    if outcome.finished:
                        finished = True
                        closing_summary = outcome.closing_summary or closing_summary

            results.append(result)
            self._record(result)
            if executed and self.on_tool_call:
                self.on_tool_call(call, result)

        round_count = state["round_count"] + 1
        idle_rounds = 0 if calls else state["idle_rounds"] + 1
        reason = self._check_termination(finished, round_count, tool_call_count, idle_rounds)

        if reason is None and not calls:
            nudge = UserInstruction(CONTINUATION_PROMPT)
            results.append(nudge)
            self._record(nudge)

        update = {
            "messages": results,
            "round_count": round_count,
            "tool_call_count": tool_call_count,
            "idle_rounds": idle_rounds,
            "closing_summary": closing_summary,
        }
        if reason is not None:
            update["terminated"] = True
            update["termination_reason"] = reason.value
        return update

    def _route(self, state: LoopState) -> str:
        return "end" if state["terminated"] else "continue"

    def _check_termination(
        self, finished: bool, round_count: int, tool_call_count: int, idle_rounds: int
    ) -> Optional[TerminationReason]:
        """First matching condition wins."""
        if finished:
            return TerminationReason.FINISHED
        if round_count >= self.config.max_rounds:
            return TerminationReason.MAX_ROUNDS
        if tool_call_count >= self.config.max_tool_calls:
            return TerminationReason.MAX_TOOL_CALLS
        if idle_rounds > 1:
            return TerminationReason.STALLED
        return None

    def _charge_tool_call(self, executed: int) -> None:
        if executed >= self.config.max_tool_calls:
            raise BudgetExceededError("tool call", self.config.max_tool_calls)

    def _send_with_retries(self, conversation: ConversationState) -> ModelTurn:
        """Send the same request until it succeeds or retries run out.

        Raises:
            BackendError: Non-retryable failure, or retries exhausted
        """
        attempt = 0
        while True:
            try:
                return self.client.send(conversation)
            except BackendError as e:
                if not e.retryable or attempt >= self.config.max_retries:
                    raise
                attempt += 1
                delay = self.config.retry_delay * attempt
                logger.warning(
                    "%s; retrying in %.1fs (attempt %d of %d)", e, delay, attempt, self.config.max_retries
                )
                self._sleep(delay)

    def _record(self, message) -> None:
        if not self.transcript:
            return
        if isinstance(message, SystemMessage):
            self.transcript.log_message("system", message.content)
        elif isinstance(message, UserInstruction):
            self.transcript.log_message("user", message.content)
        elif isinstance(message, ModelTurn):
            tool_calls = [
                {"id": call.id, "name": call.name, "arguments": call.arguments} for call in message.tool_calls
            ]
            self.transcript.log_message("assistant", message.text, tool_calls=tool_calls)
        elif isinstance(message, ToolResult):
            self.transcript.log_tool_result(message.call_id, message.content, message.is_error)
