"""
MCP proxy — turns the tools of one MCP server into local Tool instances.

    proxy = MCPProxy(StdioTransport("mcp-server"))
    await proxy.connect()
    for tool in await proxy.discover_tools():
        executor.register_tool(tool)     # registered as mcp_<remote name>

Bridged tools look exactly like local ones to the executor: their
parameters are the translated JSON Schema and their body forwards to
``tools/call``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from toolbridge import __version__
from pydantic import ValidationError

from toolbridge.errors import MCPConnectionError, MCPError, MCPProtocolError
from toolbridge.mcp.jsonrpc import DEFAULT_REQUEST_TIMEOUT, JSONRPCClient
from toolbridge.mcp.models import MCPToolDefinition, MCPToolList, MCPToolResult
from toolbridge.mcp.schema import translate
from toolbridge.mcp.transport import Transport
from toolbridge.tools.types import Tool, ToolContext, ToolKind, ToolResult, fail, ok

logger = logging.getLogger(__name__)

DEFAULT_TOOL_PREFIX = "mcp_"
PROTOCOL_VERSION = "2024-11-05"


class MCPProxy:
    """
    Connection to one MCP server.

    State is ``disconnected -> connected -> disconnected``. Everything except
    ``connect``/``disconnect`` requires an active connection.
    """

    def __init__(
        self,
        transport: Transport,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        tool_prefix: str = DEFAULT_TOOL_PREFIX,
        client_info: Optional[Dict[str, str]] = None,
    ):
        self.transport = transport
        self.tool_prefix = tool_prefix
        self.client_info = client_info or {"name": "toolbridge", "version": __version__}
        self.server_info: Optional[Dict[str, Any]] = None
        self._client = JSONRPCClient(transport, timeout=timeout)
        self._connected = False

    @property
    def timeout(self) -> float:
        return self._client.timeout

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def connect(self) -> None:
        if self._connected:
            return
        try:
            await self.transport.start()
        except Exception as exc:
            raise MCPConnectionError(f"Failed to connect to MCP server: {exc}", cause=exc)
        self._connected = True

    async def disconnect(self) -> None:
        if not self._connected:
            return
        try:
            await self.transport.close()
        finally:
            self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self.transport.is_active()

    async def initialize(self) -> Dict[str, Any]:
        """Perform the MCP initialize handshake."""
        self._ensure_connected()
        result = await self._client.request("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": self.client_info,
        })
        await self._client.notify("notifications/initialized")
        self.server_info = result if isinstance(result, dict) else {}
        return self.server_info

    async def __aenter__(self) -> "MCPProxy":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    # ── MCP methods ───────────────────────────────────────────────────────

    async def list_tools(self) -> List[MCPToolDefinition]:
        """Fetch the tool list from the MCP server."""
        self._ensure_connected()
        result = await self._client.request("tools/list", {})
        if not isinstance(result, dict):
            return []
        try:
            return MCPToolList.model_validate(result).tools
        except ValidationError as exc:
            raise MCPProtocolError(f"Malformed tools/list result: {exc}") from exc

    async def call_tool(self, name: str, params: Any) -> MCPToolResult:
        """Call a tool on the MCP server by its remote (unprefixed) name."""
        self._ensure_connected()
        result = await self._client.request("tools/call", {"name": name, "arguments": params})
        if result is None:
            return MCPToolResult(content=None)
        if not isinstance(result, dict):
            return MCPToolResult(content=result)
        try:
            return MCPToolResult.model_validate(result)
        except ValidationError as exc:
            raise MCPProtocolError(f"Malformed tools/call result: {exc}") from exc

    # ── Discovery ─────────────────────────────────────────────────────────

    async def discover_tools(self) -> List[Tool]:
        """
        List remote tools and wrap each as a local Tool.

        A schema the translator rejects aborts discovery with
        ``SchemaTranslationError`` so callers never end up with a silently
        partial tool set.
        """
        definitions = await self.list_tools()
        tools = [self._tool_from_definition(definition) for definition in definitions]
        logger.debug(f"Discovered {len(tools)} MCP tools")
        return tools

    def _tool_from_definition(self, definition: MCPToolDefinition) -> Tool:
        remote_name = definition.name
        prefixed_name = f"{self.tool_prefix}{remote_name}"
        parameters = translate(definition.input_schema, name=f"{prefixed_name}_input")

        async def forward(input: Any, context: ToolContext) -> ToolResult:
            try:
                result = await self.call_tool(remote_name, input)
            except MCPError as exc:
                return fail(exc.message)
            if result.is_error:
                return fail(str(result.content))
            return ok(result.content)

        return Tool(
            name=prefixed_name,
            description=definition.description or f"MCP tool: {remote_name}",
            parameters=parameters,
            execute=forward,
            kind=ToolKind.MCP,
        )

    def _ensure_connected(self) -> None:
        if not self.is_connected():
            raise MCPConnectionError("Not connected to MCP server")
