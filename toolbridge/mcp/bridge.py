"""MCP bridge — one proxy per configured server, all feeding one ToolRegistry."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from toolbridge.errors import MCPConnectionError, MCPError, ToolBridgeError
from toolbridge.mcp.proxy import MCPProxy
from toolbridge.mcp.transport import StdioTransport, Transport
from toolbridge.tools.registry import ToolRegistry
from toolbridge.tools.types import Tool
from toolbridge.validation.config import MCPConfig, MCPServerConfig

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str, MCPServerConfig], Transport]


def stdio_transport_factory(name: str, server: MCPServerConfig) -> Transport:
    return StdioTransport(command=server.command, args=server.args, env=server.env, cwd=server.cwd)


class MCPBridge:
    """
    Connects to every enabled MCP server and registers its tools.

    Each server's tools are registered under that server's prefix, so
    ``refresh`` and ``stop`` can remove exactly the tools a server
    contributed without touching anything else in the registry.

    Example:
        >>> bridge = MCPBridge(registry, config.merged.mcp)
        >>> await bridge.start(skip_failed=True)
        >>> bridge.tools_for("github")
        ['mcp_create_issue', 'mcp_search']
    """

    def __init__(
        self,
        registry: ToolRegistry,
        config: MCPConfig,
        transport_factory: Optional[TransportFactory] = None,
    ):
        self.registry = registry
        self.config = config
        self._transport_factory = transport_factory or stdio_transport_factory
        self._proxies: Dict[str, MCPProxy] = {}
        self._tools: Dict[str, List[Tool]] = {}
        self.failures: Dict[str, str] = {}

    @property
    def servers(self) -> List[str]:
        """Names of servers with a live proxy."""
        return list(self._proxies)

    def proxy_for(self, server: str) -> Optional[MCPProxy]:
        return self._proxies.get(server)

    def tools_for(self, server: str) -> List[str]:
        return [tool.name for tool in self._tools.get(server, [])]

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def start(self, skip_failed: bool = False) -> Dict[str, List[str]]:
        """
        Connect to each enabled server and register its tools.

        Args:
            skip_failed: Log and record failing servers in ``failures``
                instead of raising.

        Returns:
            Mapping of server name to the tool names registered from it.
        """
        self.failures.clear()
        for name in self.config.enabled_servers():
            if name in self._proxies:
                continue
            try:
                await self._start_server(name)
            except ToolBridgeError as exc:
                if not skip_failed:
                    raise MCPConnectionError(f"MCP server '{name}' failed to start: {exc.message}", cause=exc)
                logger.warning(f"MCP server '{name}' failed to start: {exc.message}")
                self.failures[name] = exc.message
        return {name: self.tools_for(name) for name in self._proxies}

    async def refresh(self, server: str) -> List[str]:
        """Re-discover one server's tools, replacing what it registered before."""
        proxy = self._proxies.get(server)
        if proxy is None:
            raise MCPConnectionError(f"MCP server '{server}' is not connected")
        self._unregister(server)
        self._register(server, await proxy.discover_tools())
        return self.tools_for(server)

    async def stop(self) -> None:
        """Disconnect every server and unregister all bridged tools."""
        for name in list(self._proxies):
            await self._stop_server(name)

    async def __aenter__(self) -> "MCPBridge":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # ── Internals ─────────────────────────────────────────────────────────

    async def _start_server(self, name: str) -> None:
        server = self.config.servers[name]
        proxy = MCPProxy(
            self._transport_factory(name, server),
            timeout=self.config.timeout,
            tool_prefix=self.config.prefix_for(name),
        )
        await proxy.connect()
        try:
            await proxy.initialize()
            tools = await proxy.discover_tools()
        except Exception:
            await proxy.disconnect()
            raise
        self._proxies[name] = proxy
        self._register(name, tools)
        logger.info(f"MCP server '{name}' started with {len(tools)} tools")

    async def _stop_server(self, name: str) -> None:
        proxy = self._proxies.pop(name)
        self._unregister(name)
        try:
            await proxy.disconnect()
        except MCPError as exc:
            logger.warning(f"MCP server '{name}' did not close cleanly: {exc.message}")

    def _register(self, name: str, tools: List[Tool]) -> None:
        for tool in tools:
            current = self.registry.get(tool.name)
            owner = self._owner_of(current) if current is not None else None
            if owner is not None and owner != name:
                logger.warning(
                    f"MCP tool '{tool.name}' from server '{name}' replaces the one from server '{owner}'"
                )
            self.registry.register(tool)
        self._tools[name] = list(tools)

    def _unregister(self, name: str) -> None:
        # Only remove entries that still hold this server's Tool objects.
        for tool in self._tools.pop(name, []):
            if self.registry.get(tool.name) is tool:
                self.registry.unregister(tool.name)

    def _owner_of(self, tool: Tool) -> Optional[str]:
        for server, tools in self._tools.items():
            if any(registered is tool for registered in tools):
                return server
        return None
