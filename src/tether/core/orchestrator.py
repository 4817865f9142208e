"""Turn orchestration: completion calls, tool rounds, cost and failure recovery."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from loguru import logger

from tether.core.cost import CostAccumulator, TurnCostRecord
from tether.core.tokens import TokenCounter
from tether.errors import API_KEY_ENV, ClassifiedError, ErrorKind, classify, describe
from tether.llm.client import CompletionResult
from tether.messages import Message, ToolCallRequest
from tether.tools.invoker import invoke
from tether.tools.registry import ToolRegistry

DEFAULT_MAX_TOOL_ROUNDS = 25

_ADVICE: dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMITED: "This usually means too many requests were sent quickly. ",
    ErrorKind.NETWORK_ERROR: "This seems like a network or connection problem. ",
    ErrorKind.TIMEOUT: "This seems like a network or connection problem. ",
    ErrorKind.SERVICE_UNAVAILABLE: "The API service might be temporarily down or experiencing issues. ",
    ErrorKind.API_ERROR: "The API service might be temporarily down or experiencing issues. ",
    ErrorKind.TOOL_SERVER_ERROR: "There was a problem using one of the tools. ",
    ErrorKind.TOOL_NOT_FOUND: "There was a problem using one of the tools. ",
    ErrorKind.INVALID_TOOL_ARGS: "There was a problem using one of the tools. ",
    ErrorKind.TOOL_ROUNDS_EXCEEDED: "The request needed more tool rounds than allowed. ",
}


class CompletionBackend(Protocol):
    @property
    def model(self) -> str: ...

    async def complete(
        self,
        history: Sequence[Message],
        tool_specs: Sequence[Mapping[str, Any]] = (),
    ) -> CompletionResult: ...


class TurnState(str, Enum):
    AWAITING_RESPONSE = "awaiting_response"
    TOOL_CALLS_PENDING = "tool_calls_pending"
    DONE = "done"
    FATAL = "fatal"


@dataclass(frozen=True)
class TurnEvent:
    """Progress notification emitted while a turn runs.

    ``kind`` is one of ``tool_calls``, ``tool_result``, ``answer`` or ``error``.
    """

    kind: str
    text: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    message: Message | None = None
    cost: TurnCostRecord | None = None
    error: ClassifiedError | None = None


@dataclass(frozen=True)
class TurnResult:
    """Outcome of one user turn."""

    state: TurnState
    answer: str | None
    error: ClassifiedError | None = None
    rounds: int = 0
    costs: tuple[TurnCostRecord, ...] = ()
    session_ended: bool = False

    @property
    def cost(self) -> float:
        return sum(record.cost for record in self.costs)


@dataclass
class _TurnProgress:
    rounds: int = 0
    costs: list[TurnCostRecord] = field(default_factory=list)

    def result(
        self,
        state: TurnState,
        answer: str | None,
        *,
        error: ClassifiedError | None = None,
        session_ended: bool = False,
    ) -> TurnResult:
        return TurnResult(
            state=state,
            answer=answer,
            error=error,
            rounds=self.rounds,
            costs=tuple(self.costs),
            session_ended=session_ended,
        )


class TurnOrchestrator:
    """Drives one conversation: each user input runs until a plain answer or a terminal error.

    The orchestrator is the only writer of :attr:`history`.
    """

    def __init__(
        self,
        client: CompletionBackend,
        registry: ToolRegistry,
        cost: CostAccumulator,
        *,
        system_prompt: str | None = None,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        token_counter: TokenCounter | None = None,
        on_event: Callable[[TurnEvent], None] | None = None,
        tool_server_url: str | None = None,
    ) -> None:
        self._client = client
        self._registry = registry
        self._cost = cost
        self._max_tool_rounds = max_tool_rounds
        self._token_counter = token_counter
        self._on_event = on_event
        self._tool_server_url = tool_server_url
        self.history: list[Message] = []
        self.state = TurnState.DONE
        if system_prompt:
            self.history.append(Message.system(system_prompt))

    @property
    def cost(self) -> CostAccumulator:
        return self._cost

    async def run_turn(self, user_input: str) -> TurnResult | None:
        """Run one user turn; blank input returns ``None`` without touching history."""
        text = user_input.strip()
        if not text:
            return None

        self.history.append(Message.user(text))
        progress = _TurnProgress()
        self._transition(TurnState.AWAITING_RESPONSE)

        while True:
            try:
                message = await self._request_completion(progress)
            except Exception as exc:
                error = classify(exc, tool_server_url=self._tool_server_url)
                return self._fail(progress, error)

            if not message.has_tool_calls:
                self.history.append(message)
                self._transition(TurnState.DONE)
                answer = message.content or ""
                self._emit(
                    TurnEvent("answer", text=answer, message=message, cost=progress.costs[-1])
                )
                return progress.result(TurnState.DONE, answer)

            if self._max_tool_rounds and progress.rounds >= self._max_tool_rounds:
                error = ClassifiedError(
                    ErrorKind.TOOL_ROUNDS_EXCEEDED,
                    details=f"Stopped after {progress.rounds} tool rounds (limit {self._max_tool_rounds}).",
                    retryable=False,
                )
                return self._fail(progress, error)

            self.history.append(message)
            self._transition(TurnState.TOOL_CALLS_PENDING)
            self._emit(TurnEvent("tool_calls", tool_calls=message.tool_calls, cost=progress.costs[-1]))
            await self._run_tool_calls(message.tool_calls)
            progress.rounds += 1
            self._transition(TurnState.AWAITING_RESPONSE)

    async def _request_completion(self, progress: _TurnProgress) -> Message:
        input_estimate = self._estimate_messages(self.history)
        result = await self._client.complete(self.history, self._registry.model_tools())

        if result.usage is not None:
            input_tokens = result.usage.prompt_tokens
            output_tokens = result.usage.completion_tokens
        else:
            input_tokens = input_estimate
            output_tokens = self._estimate_output(result.message)
        record = self._cost.record_call(input_tokens, output_tokens, self._client.model)
        progress.costs.append(record)
        return result.message

    async def _run_tool_calls(self, calls: Sequence[ToolCallRequest]) -> None:
        logger.info("turn.tools.dispatch count={}", len(calls))
        results = await asyncio.gather(
            *(invoke(call, self._registry, tool_server_url=self._tool_server_url) for call in calls)
        )
        for result in results:
            self.history.append(result)
            self._emit(TurnEvent("tool_result", text=result.content or "", message=result))

    def _fail(self, progress: _TurnProgress, error: ClassifiedError) -> TurnResult:
        self._transition(TurnState.FATAL)
        logger.error("turn.failed kind={} {}", error.kind.value, describe(error))

        if error.session_fatal:
            notice = (
                f"Authentication failed ({describe(error).rstrip('.')}). "
                f"Please check your {API_KEY_ENV} environment variable. "
                "You'll need to restart the agent after fixing it."
            )
            self._emit(TurnEvent("error", text=notice, error=error))
            return progress.result(TurnState.FATAL, notice, error=error, session_ended=True)

        apology = apology_for(error)
        self.history.append(Message.assistant(apology))
        self._emit(TurnEvent("error", text=apology, error=error))
        return progress.result(TurnState.FATAL, apology, error=error)

    def _estimate_messages(self, messages: Sequence[Message]) -> int:
        if self._token_counter is None:
            return 0
        return self._token_counter.count_messages(messages)

    def _estimate_output(self, message: Message) -> int:
        if self._token_counter is None:
            return 0
        tokens = self._token_counter.count_text(message.content or "")
        for call in message.tool_calls:
            tokens += self._token_counter.count_text(call.name)
            tokens += self._token_counter.count_text(call.arguments)
        return tokens

    def _transition(self, state: TurnState) -> None:
        logger.info("turn.state from={} to={}", self.state.value, state.value)
        self.state = state

    def _emit(self, event: TurnEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)


def apology_for(error: ClassifiedError) -> str:
    """Assistant-style message recorded in history when a turn fails."""
    advice = _ADVICE.get(error.kind, "")
    return (
        f"Sorry, I encountered an issue: {describe(error).rstrip('.')}. "
        f"{advice}You can try again or enter a new request."
    )
