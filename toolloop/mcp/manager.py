"""MCP server lifecycle manager and extension tool bridge."""

from __future__ import annotations

import json
import logging
from typing import Any

from langchain_core.tools import BaseTool
from pydantic import ConfigDict

from ..tools.result_schema import ToolResult, make_tool_error, make_tool_success
from .client import McpClient, extension_tool_name

logger = logging.getLogger(__name__)

_EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


class McpExtensionTool(BaseTool):
    """A LangChain tool that delegates to an MCP server tool.

    ``args_schema`` is the server's own JSON schema, so the model sees the
    real parameters and arguments are forwarded unchanged.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = ""
    description: str = ""
    mcp_client: Any = None
    mcp_server: str = ""
    mcp_tool_name: str = ""

    def _run(self, **_: Any) -> ToolResult:
        return make_tool_error(kind=self.name, error="MCP tools require async execution")

    async def _arun(self, **kwargs: Any) -> ToolResult:
        if self.mcp_client is None or not self.mcp_client.is_connected:
            return make_tool_error(
                kind=self.name, error=f"MCP server '{self.mcp_server}' is not connected"
            )
        text, is_error = await self.mcp_client.call_tool(self.mcp_tool_name, kwargs)
        if is_error:
            return make_tool_error(kind=self.name, error=text)
        return make_tool_success(
            kind=self.name,
            output=text,
            data={"server": self.mcp_server, "tool": self.mcp_tool_name},
        )


class McpManager:
    """Manages multiple MCP server connections and creates extension tools."""

    def __init__(self) -> None:
        self._clients: dict[str, McpClient] = {}

    @property
    def connected_servers(self) -> list[str]:
        return [name for name, c in self._clients.items() if c.is_connected]

    async def add_server(
        self,
        name: str,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
    ) -> McpClient:
        """Add and connect to an MCP server."""
        if name in self._clients:
            await self.remove_server(name)

        client = McpClient(name=name, command=command, args=args, env=env)
        try:
            await client.connect()
            await client.list_tools()
        except Exception as exc:
            logger.error("Failed to connect to MCP server '%s': %s", name, exc)
            await client.disconnect()
            raise
        self._clients[name] = client
        logger.info("MCP server '%s' added with %d tools", name, len(client.tools))
        return client

    async def remove_server(self, name: str) -> None:
        """Disconnect and remove an MCP server."""
        client = self._clients.pop(name, None)
        if client:
            await client.disconnect()

    async def shutdown(self) -> None:
        """Disconnect all MCP servers."""
        for name in list(self._clients.keys()):
            await self.remove_server(name)

    def get_tools(self) -> list[BaseTool]:
        """Create extension tool wrappers for all connected MCP server tools."""
        tools: list[BaseTool] = []
        for name, client in self._clients.items():
            if not client.is_connected:
                continue
            for tool in client.tools:
                tools.append(McpExtensionTool(
                    name=extension_tool_name(name, tool.name),
                    description=tool.description or f"MCP tool: {tool.name}",
                    args_schema=tool.inputSchema or _EMPTY_SCHEMA,
                    mcp_client=client,
                    mcp_server=name,
                    mcp_tool_name=tool.name,
                ))
        return tools

    async def setup_from_config(
        self, mcp_servers: list[dict[str, Any]]
    ) -> list[BaseTool]:
        """Initialize MCP servers from config and return their tools.

        Args:
            mcp_servers: List of server configs from the init message, each with
                keys: name, transport, command, args, env_vars.

        Returns:
            Tools from all successfully connected servers.  A server that
            fails to start is logged and skipped.
        """
        for server_config in mcp_servers:
            name = server_config.get("name", "")
            transport = server_config.get("transport", "stdio")
            if transport != "stdio":
                logger.warning(
                    "Skipping MCP server '%s': transport '%s' not supported",
                    name, transport,
                )
                continue

            command = server_config.get("command", "")
            if not command:
                logger.warning("Skipping MCP server '%s': no command", name)
                continue

            args_raw = server_config.get("args")
            args: list[str] = []
            if isinstance(args_raw, str):
                try:
                    args = json.loads(args_raw)
                except json.JSONDecodeError:
                    args = args_raw.split()
            elif isinstance(args_raw, list):
                args = args_raw

            env_raw = server_config.get("env_vars")
            env: dict[str, str] = {}
            if isinstance(env_raw, str):
                try:
                    env = json.loads(env_raw)
                except json.JSONDecodeError:
                    logger.warning("MCP server '%s': env_vars is not valid JSON", name)
            elif isinstance(env_raw, dict):
                env = env_raw

            try:
                await self.add_server(name, command, args, env)
            except Exception as exc:
                logger.error("Failed to start MCP server '%s': %s", name, exc)

        return self.get_tools()
