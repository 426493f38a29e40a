"""Main entry point for the toolloop agent."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any

import websockets
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .agent import AgentConfig, AgentLoopController, create_controller
from .diagnostics import configure_raw_frame_log, record_raw_frame
from .mcp.manager import McpManager
from .prompts.assembler import assemble_system_prompt
from .providers import ChatTransport
from .tools import create_all_tools
from .tools.memory import FileOutlineLearner
from .tools.ports import AgentObserver
from .tools.result_schema import FileChange
from .tools.workspace import JsonMemoryStore

logger = logging.getLogger("toolloop")

BACKEND_WS_URL = os.environ.get(
    "BACKEND_WS_URL", "ws://host.docker.internal:3001/internal/ws"
)
CONTAINER_TOKEN = os.environ.get("CONTAINER_TOKEN", "")
MAX_RECONNECT_ATTEMPTS = 5


class SessionObserver(AgentObserver):
    """Observer for a websocket session.

    Questions are never answered inline: ``ask_user`` records the question
    and reports it pending, and the answer arrives as a ``question_answer``
    message that starts the next turn.
    """

    def __init__(self) -> None:
        self.pending_question: str | None = None
        self.changes: list[FileChange] = []

    def ask_user(self, question: str, options: list[str] | None) -> str | None:
        self.pending_question = question
        return None

    def on_task_finished(self, summary: str) -> None:
        logger.info("Task finished: %s", summary[:200])

    def on_file_changed(self, change: FileChange) -> None:
        self.changes.append(change)
        logger.info("File %s: %s", change.change_type.value, change.path)


class AgentSession:
    """Manages the WebSocket connection and agent lifecycle."""

    def __init__(self, ws_url: str, token: str) -> None:
        self.ws_url = ws_url
        self.token = token
        self.ws: Any = None
        self.agent: AgentLoopController | None = None
        self.observer = SessionObserver()
        self.mcp_manager: McpManager = McpManager()
        self._current_task: asyncio.Task | None = None
        self._shutdown = False

    async def run(self) -> None:
        """Connect to backend and process messages."""
        url = f"{self.ws_url}?token={self.token}"
        logger.info("Connecting to backend: %s", self.ws_url)

        try:
            async with websockets.connect(url) as ws:
                self.ws = ws
                await ws.send(json.dumps({"type": "ready"}))
                logger.info("Agent ready, waiting for messages...")

                async for raw in ws:
                    if self._shutdown:
                        break
                    await self._handle_message(raw)
        finally:
            await self._close_agent()
            await self.mcp_manager.shutdown()

    async def _handle_message(self, raw: str | bytes) -> None:
        """Dispatch an incoming WebSocket message."""
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON received: %s", raw[:200])
            return

        msg_type = msg.get("type", "")

        if msg_type == "init":
            await self._handle_init(msg)
        elif msg_type == "user_message":
            await self._handle_user_message(msg)
        elif msg_type == "question_answer":
            await self._handle_question_answer(msg)
        elif msg_type == "truncate_history":
            self._handle_truncate_history(msg)
        elif msg_type == "cancel":
            self._handle_cancel()
        else:
            logger.warning("Unknown message type: %s", msg_type)

    async def _handle_init(self, msg: dict) -> None:
        """Initialize the agent with config from backend."""
        config = AgentConfig(msg)
        logger.info(
            "Initialized for conversation %s (model=%s, workspace=%s)",
            config.conversation_id,
            config.model,
            config.workspace,
        )
        await self._close_agent()

        memory = JsonMemoryStore(config.workspace)
        tools = create_all_tools(config.workspace, memory=memory, observer=self.observer)

        mcp_tools = []
        if config.mcp_servers and config.tools_enabled:
            mcp_tools = await self.mcp_manager.setup_from_config(config.mcp_servers)
            logger.info("Added %d MCP tools from %d servers",
                        len(mcp_tools), len(self.mcp_manager.connected_servers))

        if config.tools_enabled:
            config.system_prompt = assemble_system_prompt(
                [t.name for t in tools],
                mcp_servers=config.mcp_servers or None,
                user_override=config.custom_instructions or None,
                project_context=config.project_context or None,
                mcp_tool_names=[t.name for t in mcp_tools],
            )

        raw_sink = record_raw_frame if configure_raw_frame_log() else None
        transport = ChatTransport(
            config.api_key,
            config.model,
            endpoint_url=config.endpoint_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
        self.agent = create_controller(
            config,
            transport,
            tools,
            mcp_tools,
            observer=self.observer,
            learner=FileOutlineLearner(memory),
            raw_sink=raw_sink,
        )

    async def _handle_user_message(self, msg: dict) -> None:
        """Process a user message through the agent."""
        content = msg.get("content", "")
        if not content:
            return
        await self._start_turn(content)

    async def _start_turn(self, content: str) -> None:
        if self.agent is None:
            await self._send_error("not_initialized", "Agent not initialized")
            return
        if self.agent.processing or (self._current_task and not self._current_task.done()):
            await self._send_error("busy", "A turn is already in progress")
            return
        self.observer.pending_question = None
        self._current_task = asyncio.create_task(self._run_agent(content))

    async def _run_agent(self, content: str) -> None:
        """Stream agent events back through WebSocket."""
        if self.agent is None:
            raise RuntimeError("Agent not initialized before _run_agent")
        try:
            async for event in self.agent.handle_message(content):
                await self.ws.send(event.to_json())
        except websockets.ConnectionClosed:
            logger.warning("WebSocket closed during agent run")
            self.agent.cancel()

    async def _handle_question_answer(self, msg: dict[str, Any]) -> None:
        """Resume after ``ask_user`` with the user's answer as the next turn."""
        if self.agent is None:
            await self._send_error("not_initialized", "Agent not initialized")
            return
        answer = str(msg.get("answer") or "").strip()
        if not answer:
            await self._send_error("invalid_question_answer", "Missing answer")
            return
        if self.observer.pending_question is None:
            await self._send_error("question_not_pending", "No question is waiting for an answer")
            return
        await self._start_turn(answer)

    def _handle_truncate_history(self, msg: dict) -> None:
        """Truncate the agent's in-memory history for regenerate/edit."""
        if self.agent is None:
            logger.warning("truncate_history received before init")
            return
        keep_turns = msg.get("keep_turns", 0)
        old_len = len(self.agent.messages)
        self.agent.truncate_history(keep_turns)
        logger.info(
            "Truncated history: keep_turns=%d, messages %d -> %d",
            keep_turns, old_len, len(self.agent.messages),
        )

    def _handle_cancel(self) -> None:
        """Cancel the current generation."""
        logger.info("Cancel received")
        if self.agent:
            self.agent.cancel()

    async def _send_error(self, code: str, message: str) -> None:
        """Send an error message to the backend."""
        await self.ws.send(json.dumps({
            "type": "error",
            "code": code,
            "message": message,
        }))

    async def _close_agent(self) -> None:
        if self._current_task and not self._current_task.done():
            if self.agent:
                self.agent.cancel()
            try:
                await self._current_task
            except websockets.ConnectionClosed:
                logger.debug("Connection closed while finishing the last turn")
        if self.agent is not None:
            await self.agent.close()
        self._current_task = None

    def shutdown(self) -> None:
        """Signal graceful shutdown."""
        self._shutdown = True
        self._handle_cancel()
        # Background work and MCP cleanup happen in the async context


async def main() -> None:
    """Entry point with reconnection logic."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )

    session = AgentSession(BACKEND_WS_URL, CONTAINER_TOKEN)

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, session.shutdown)

    @retry(
        retry=retry_if_exception_type(
            (websockets.ConnectionClosedError, ConnectionRefusedError)
        ),
        stop=stop_after_attempt(MAX_RECONNECT_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        reraise=True,
    )
    async def _connect_with_retry() -> None:
        await session.run()

    try:
        await _connect_with_retry()
    except (websockets.ConnectionClosedError, ConnectionRefusedError):
        logger.error("Max reconnection attempts reached, exiting")
        sys.exit(1)
    except asyncio.CancelledError:
        logger.info("Shutting down")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
