"""Agent loop: stream a model turn, run its tool calls, repeat."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Sequence

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from .dispatcher import ToolDispatcher, ToolName, parse_arguments
from .display import MessageSnapshot, StreamingDisplay
from .history import ContextWindowPolicy, build_message_history, truncate_turns
from .prompts.assembler import assemble_system_prompt
from .providers import DEFAULT_ENDPOINT_URL
from .sanitize import has_unclosed_thinking_tag, sanitize_content, sanitize_delta
from .streaming import (
    Completed,
    ContentDelta,
    FinishReason,
    RawFrame,
    ReasoningDelta,
    Started,
    StreamError,
    ToolCallResponse,
    ToolCalls,
    TransportError,
    TransportErrorKind,
)
from .tools.ports import AgentObserver
from .tools.result_schema import ToolResult

logger = logging.getLogger("toolloop")

DEFAULT_MAX_ITERATIONS = 25
DEFAULT_STREAM_UPDATE_INTERVAL_MS = 100
DEFAULT_MODEL = "deepseek-ai/DeepSeek-V3"
DEFAULT_WORKSPACE = "/workspace"
TOOL_OUTPUT_PREVIEW_CHARS = 500

CANCELLED_NOTICE = "\n\n⏹️ Generation stopped by user."


def _load_positive_int(name: str, default: int) -> int:
    """Read a positive integer from the environment, warning on bad values."""
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, defaulting to %d", name, raw, default)
        return default
    if value < 1:
        logger.warning("%s=%d must be at least 1, defaulting to %d", name, value, default)
        return default
    return value


def _load_max_iterations() -> int:
    return _load_positive_int("MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS)


def _load_stream_update_interval() -> float:
    """Debounce interval in seconds."""
    return _load_positive_int("STREAM_UPDATE_INTERVAL_MS", DEFAULT_STREAM_UPDATE_INTERVAL_MS) / 1000


def _load_learning_timeout() -> float:
    return float(_load_positive_int("LEARNING_TIMEOUT_S", 30))


def limit_notice(max_iterations: int) -> str:
    return (
        f"\n\n⚠️ Agent reached maximum iteration limit ({max_iterations}). "
        "Stopping to prevent infinite loop."
    )


def error_notice(message: str) -> str:
    return f"\n\n❌ Error: {message}"


class AgentConfig:
    """Configuration received from the backend init message."""

    def __init__(self, init_data: dict[str, Any]) -> None:
        self.conversation_id: str = init_data["conversation_id"]
        self.model: str = init_data.get("model") or DEFAULT_MODEL
        self.api_key: str = init_data.get("api_key", "") or ""
        self.endpoint_url: str = init_data.get("endpoint_url") or DEFAULT_ENDPOINT_URL
        self.temperature: float = float(init_data.get("temperature", 0.7))
        self.max_tokens: int = int(init_data.get("max_tokens", 4096))
        # A caller-supplied prompt is kept as extra instructions on top of
        # the assembled one.
        self.custom_instructions: str = init_data.get("system_prompt") or ""
        self.project_context: str = init_data.get("project_context", "") or ""
        self.tools_enabled: bool = init_data.get("tools_enabled", True)
        self.workspace: str = init_data.get("workspace") or DEFAULT_WORKSPACE
        self.mcp_servers: list[dict[str, Any]] = init_data.get("mcp_servers", [])
        self.history: list[dict[str, Any]] = init_data.get("history", [])
        self.max_iterations: int = self._max_iterations(init_data.get("max_iterations"))
        self.stream_update_interval: float = _load_stream_update_interval()
        self.learning_timeout: float = _load_learning_timeout()
        self.system_prompt: str = assemble_system_prompt(
            [],
            user_override=self.custom_instructions or None,
            project_context=self.project_context or None,
        )

    @staticmethod
    def _max_iterations(value: Any) -> int:
        if value is None:
            return _load_max_iterations()
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            parsed = 0
        if parsed < 1:
            logger.warning("Invalid max_iterations=%r, using the environment default", value)
            return _load_max_iterations()
        return parsed


class AgentEvent:
    """An event emitted to the session during a turn."""

    def __init__(self, event_type: str, data: dict[str, Any]) -> None:
        self.type = event_type
        self.data = data

    def to_json(self) -> str:
        return json.dumps({"type": self.type, **self.data}, ensure_ascii=False)

    def __repr__(self) -> str:
        return f"AgentEvent({self.type!r}, {self.data!r})"


class LoopPhase(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    TOOL_EXECUTING = "tool_executing"
    FINALIZING = "finalizing"
    CANCELLED = "cancelled"


class MessageStatus(str, Enum):
    STREAMING = "streaming"
    SENT = "sent"
    ERROR = "error"


@dataclass
class ChatMessage:
    """The assistant message of one turn.

    Only a ``STREAMING`` message is mutated; the controller owns it and
    hands out :class:`MessageSnapshot` copies through the display.
    """

    role: str = "assistant"
    content: str = ""
    status: MessageStatus = MessageStatus.STREAMING
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class AgentLoopState:
    phase: LoopPhase = LoopPhase.IDLE
    iteration: int = 0
    pending_tool_calls: list[ToolCallResponse] = field(default_factory=list)
    cancelled: bool = False
    task_completed: bool = False
    awaiting_user: bool = False
    error: TransportError | None = None


@dataclass
class _Turn:
    """Everything one turn mutates; a finished turn's object is never reused."""

    state: AgentLoopState
    queue: asyncio.Queue[AgentEvent | None]
    message: ChatMessage = field(default_factory=ChatMessage)
    turn_messages: list[BaseMessage] = field(default_factory=list)
    display: StreamingDisplay | None = None
    stream_task: asyncio.Task[_StreamOutcome] | None = None

    @property
    def cancelled(self) -> bool:
        return self.state.cancelled


@dataclass
class _StreamOutcome:
    content: str = ""
    tool_calls: list[ToolCallResponse] = field(default_factory=list)
    error: TransportError | None = None


def tool_display_name(name: str) -> str:
    return " ".join(part.capitalize() for part in name.split("_") if part)


def render_tool_report(name: str) -> str:
    return f"\n\n🔧 **{tool_display_name(name)}**\n"


def render_tool_outcome(result: ToolResult) -> str:
    if not result.success:
        return f"❌ {result.error}"
    output = result.output
    if len(output) > TOOL_OUTPUT_PREVIEW_CHARS:
        output = output[:TOOL_OUTPUT_PREVIEW_CHARS] + "..."
    return f"✅ {output}"


class AgentLoopController:
    """Runs agent turns for one conversation.

    One turn at a time: :meth:`handle_message` refuses a new turn while
    ``processing`` is set, and ``processing`` is only cleared once the
    previous turn's loop has fully finished.  Conversation history is
    ``messages``; the tool-call exchange of the current turn lives in a
    turn-local list and is replaced by one plain assistant message when the
    turn is finalized.
    """

    def __init__(
        self,
        config: AgentConfig,
        transport: Any,
        dispatcher: ToolDispatcher,
        *,
        observer: AgentObserver | None = None,
        raw_sink: Callable[[str], None] | None = None,
        context_policy: ContextWindowPolicy | None = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.dispatcher = dispatcher
        self.observer = observer or AgentObserver()
        self.raw_sink = raw_sink
        self.context_policy = context_policy or ContextWindowPolicy()
        self.messages: list[BaseMessage] = [
            SystemMessage(content=config.system_prompt),
            *build_message_history(config.history),
        ]
        self.transcript: list[ChatMessage] = []
        self.state = AgentLoopState()
        self.processing = False
        self._turn: _Turn | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Signal cancellation of the current turn.

        An in-flight model request is aborted at once; a running tool call
        finishes and no further call starts.
        """
        turn = self._turn
        if turn is None or turn.cancelled:
            return
        logger.info("Cancelling turn at phase %s", turn.state.phase.value)
        turn.state.cancelled = True
        if turn.display is not None:
            turn.display.cancel()
        if turn.stream_task is not None and not turn.stream_task.done():
            turn.stream_task.cancel()

    def truncate_history(self, keep_turns: int) -> None:
        """Keep only the first *keep_turns* user exchanges (system prompt kept)."""
        self.messages = truncate_turns(self.messages, keep_turns)

    async def close(self) -> None:
        self.cancel()
        await self.dispatcher.close()

    async def handle_message(self, content: str) -> AsyncIterator[AgentEvent]:
        """Run one user turn and yield its events.

        Yields: message_update, tool_call, tool_result, complete, error.
        Closing the generator early cancels the turn and waits for its loop
        to wind down before another turn can start.
        """
        if self.processing:
            yield AgentEvent("error", {"code": "busy", "message": "A turn is already in progress"})
            return

        self.processing = True
        queue: asyncio.Queue[AgentEvent | None] = asyncio.Queue()
        turn = _Turn(state=AgentLoopState(phase=LoopPhase.REQUESTING), queue=queue)
        self._turn = turn
        self.state = turn.state
        self.messages.append(HumanMessage(content=content))
        task = asyncio.create_task(self._agent_loop(turn))
        task.add_done_callback(lambda _t: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            await task
        except asyncio.CancelledError:
            yield AgentEvent("error", {"code": "cancelled", "message": "Generation cancelled"})
        except Exception as exc:
            logger.exception("Agent turn failed")
            yield AgentEvent("error", {"code": "agent_error", "message": str(exc)})
        finally:
            if not task.done():
                self.cancel()
                try:
                    await asyncio.shield(task)
                except asyncio.CancelledError:
                    task.cancel()
                    raise
                except Exception:
                    logger.exception("Agent turn failed after its consumer left")
            self._turn = None
            self.processing = False
            turn.state.phase = LoopPhase.IDLE

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _emit(self, turn: _Turn, event_type: str, data: dict[str, Any]) -> None:
        event = AgentEvent(event_type, data)
        try:
            self.observer.on_event(event)
        except Exception:
            logger.exception("Observer failed on %s event", event_type)
        turn.queue.put_nowait(event)

    def _publish_snapshot(self, turn: _Turn, snapshot: MessageSnapshot) -> None:
        try:
            self.observer.on_message(snapshot)
        except Exception:
            logger.exception("Observer failed on message update")
        self._emit(turn, "message_update", snapshot.to_dict())

    def _redisplay(self, turn: _Turn) -> None:
        if turn.display is not None:
            turn.display.update(turn.message.id, turn.message.content, turn.message.status.value)

    async def _agent_loop(self, turn: _Turn) -> None:
        state = turn.state
        message = turn.message
        turn.display = StreamingDisplay(
            lambda snapshot: self._publish_snapshot(turn, snapshot),
            self.config.stream_update_interval,
        )
        try:
            while not turn.cancelled:
                if state.iteration >= self.config.max_iterations:
                    logger.warning("Iteration limit %d reached", self.config.max_iterations)
                    message.content += limit_notice(self.config.max_iterations)
                    break

                state.phase = LoopPhase.REQUESTING
                state.iteration += 1
                logger.info("Agent iteration %d", state.iteration)
                outcome = await self._run_stream(turn)
                if turn.cancelled or outcome is None:
                    break
                if outcome.error is not None:
                    state.error = outcome.error
                    message.content += error_notice(outcome.error.message)
                    self._emit(turn, "error", {
                        "code": "transport_error",
                        "kind": outcome.error.kind.value,
                        "message": outcome.error.message,
                    })
                    break

                calls = [call for call in outcome.tool_calls if call.name.strip()]
                if len(calls) != len(outcome.tool_calls):
                    logger.warning(
                        "Dropped %d tool call(s) without a name",
                        len(outcome.tool_calls) - len(calls),
                    )
                if not calls:
                    break

                await self._execute_tool_calls(turn, outcome.content, calls)
                if state.task_completed or state.awaiting_user:
                    break
        finally:
            self._finalize(turn)

    async def _run_stream(self, turn: _Turn) -> _StreamOutcome | None:
        turn.stream_task = asyncio.create_task(self._consume_stream(turn))
        try:
            return await turn.stream_task
        except asyncio.CancelledError:
            if not turn.cancelled:
                raise
            return None
        finally:
            turn.stream_task = None

    async def _consume_stream(self, turn: _Turn) -> _StreamOutcome:
        message = turn.message
        outcome = _StreamOutcome()
        request = self.context_policy.apply([*self.messages, *turn.turn_messages])
        tools = self.dispatcher.tools if self.config.tools_enabled else []
        reasoning_open = False

        async for event in self.transport.stream(request, tools):
            if turn.cancelled:
                break
            if isinstance(event, RawFrame):
                if self.raw_sink is not None:
                    self.raw_sink(event.raw)
            elif isinstance(event, Started):
                turn.state.phase = LoopPhase.STREAMING
            elif isinstance(event, ReasoningDelta):
                text = sanitize_delta(event.text)
                if not text:
                    continue
                if not reasoning_open:
                    message.content += "<think>"
                    reasoning_open = True
                message.content += text
                self._redisplay(turn)
            elif isinstance(event, ContentDelta):
                text = sanitize_delta(event.text)
                if not text:
                    continue
                if reasoning_open:
                    message.content += "</think>\n"
                    reasoning_open = False
                message.content += text
                outcome.content += text
                self._redisplay(turn)
            elif isinstance(event, ToolCalls):
                outcome.tool_calls = list(event.calls)
                turn.state.pending_tool_calls = list(event.calls)
            elif isinstance(event, FinishReason):
                if event.reason == "length":
                    logger.warning("Model output truncated at max_tokens=%d", self.config.max_tokens)
            elif isinstance(event, StreamError):
                outcome.error = event.error or TransportError(
                    TransportErrorKind.NETWORK, event.message
                )
            elif isinstance(event, Completed):
                break

        if reasoning_open:
            message.content += "</think>\n"
        return outcome

    async def _execute_tool_calls(
        self,
        turn: _Turn,
        content: str,
        calls: list[ToolCallResponse],
    ) -> None:
        state = turn.state
        message = turn.message
        state.phase = LoopPhase.TOOL_EXECUTING
        state.pending_tool_calls = list(calls)
        parsed_args = [parse_arguments(call.arguments) for call in calls]
        turn.turn_messages.append(AIMessage(
            content=content,
            tool_calls=[
                {"id": call.id, "name": call.name, "args": args or {}}
                for call, args in zip(calls, parsed_args)
            ],
        ))

        for call, args in zip(calls, parsed_args):
            if turn.cancelled:
                break
            state.pending_tool_calls.pop(0)
            self._emit(turn, "tool_call", {
                "tool_call_id": call.id,
                "tool_name": call.name,
                "tool_input": args if args is not None else call.arguments,
            })
            message.content += render_tool_report(call.name)
            self._redisplay(turn)

            result = await self.dispatcher.execute(call.name, call.arguments)

            message.content += render_tool_outcome(result)
            self._redisplay(turn)
            self._emit(turn, "tool_result", {
                "tool_call_id": call.id,
                "tool_name": call.name,
                "result": result.model_dump(mode="json", exclude={"changes"}),
                "is_error": not result.success,
            })
            turn.turn_messages.append(
                ToolMessage(content=result.model_text(), tool_call_id=call.id)
            )
            if call.name == ToolName.FINISH_TASK.value:
                state.task_completed = True
            elif call.name == ToolName.ASK_USER.value:
                state.awaiting_user = True

        # Every tool call in the assistant message needs a result message.
        for call in state.pending_tool_calls:
            turn.turn_messages.append(
                ToolMessage(content="Error: cancelled by user", tool_call_id=call.id)
            )
        state.pending_tool_calls = []

    def _finalize(self, turn: _Turn) -> None:
        state = turn.state
        message = turn.message
        display = turn.display
        if display is not None:
            display.cancel()
        turn.display = None
        turn.turn_messages = []

        if turn.cancelled:
            state.phase = LoopPhase.CANCELLED
            if not message.content.strip():
                logger.info("Turn cancelled before any output; discarding message")
                self._emit(turn, "complete", {
                    "message_id": message.id,
                    "content": "",
                    "status": "discarded",
                    "task_completed": state.task_completed,
                    "iterations": state.iteration,
                })
                return
            # A stream aborted mid-reasoning leaves its think section open.
            if has_unclosed_thinking_tag(message.content):
                message.content += "</think>\n"
            message.content += CANCELLED_NOTICE
            message.status = MessageStatus.SENT
        else:
            state.phase = LoopPhase.FINALIZING
            message.status = MessageStatus.ERROR if state.error else MessageStatus.SENT

        message.content = sanitize_content(message.content)
        if display is not None:
            display.flush(message.id, message.content, message.status.value)
        self.transcript.append(message)
        if message.content:
            self.messages.append(AIMessage(content=message.content))
        self._emit(turn, "complete", {
            "message_id": message.id,
            "content": message.content,
            "status": message.status.value,
            "task_completed": state.task_completed,
            "iterations": state.iteration,
        })


def create_controller(
    config: AgentConfig,
    transport: Any,
    tools: Sequence[Any],
    extensions: Sequence[Any] = (),
    *,
    observer: AgentObserver | None = None,
    learner: Any = None,
    raw_sink: Callable[[str], None] | None = None,
) -> AgentLoopController:
    """Wire a dispatcher and a controller from a config."""
    dispatcher = ToolDispatcher(
        tools,
        extensions,
        observer=observer,
        learner=learner,
        workspace=config.workspace,
        learning_timeout=config.learning_timeout,
    )
    return AgentLoopController(
        config, transport, dispatcher, observer=observer, raw_sink=raw_sink
    )
