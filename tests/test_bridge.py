"""Tests for the multi-server MCP bridge."""

import pytest

from fakes import SEARCH_TOOL, FakeTransport, mcp_server
from toolbridge.errors import MCPConnectionError
from toolbridge.mcp.bridge import MCPBridge, stdio_transport_factory
from toolbridge.mcp.proxy import MCPProxy
from toolbridge.mcp.transport import StdioTransport
from toolbridge.tools.registry import ToolRegistry
from toolbridge.tools.types import ToolKind, define_tool, ok
from toolbridge.validation.config import MCPConfig, MCPServerConfig

FETCH_TOOL = {"name": "fetch", "inputSchema": {"type": "object", "properties": {"url": {"type": "string"}}}}


class FakeServers:
    """Transport factory handing out one FakeTransport per server name."""

    def __init__(self, **tools_by_server):
        self.transports = {
            name: FakeTransport(mcp_server(tools=tools)) for name, tools in tools_by_server.items()
        }
        self.created = []

    def __call__(self, name, server):
        self.created.append((name, server.command))
        return self.transports[name]


def config(**servers):
    return MCPConfig(servers={name: {"command": name, **extra} for name, extra in servers.items()})


class TestStart:
    @pytest.mark.asyncio
    async def test_registers_tools_from_every_server(self):
        registry = ToolRegistry()
        servers = FakeServers(search=[SEARCH_TOOL], web=[FETCH_TOOL])
        bridge = MCPBridge(registry, config(search={}, web={"prefix": "web_"}), transport_factory=servers)

        registered = await bridge.start()

        assert registered == {"search": ["mcp_search"], "web": ["web_fetch"]}
        assert registry.get("mcp_search").kind == ToolKind.MCP
        assert registry.has("web_fetch")
        assert bridge.servers == ["search", "web"]
        assert servers.created == [("search", "search"), ("web", "web")]

    @pytest.mark.asyncio
    async def test_performs_handshake(self):
        servers = FakeServers(search=[SEARCH_TOOL])
        bridge = MCPBridge(ToolRegistry(), config(search={}), transport_factory=servers)

        await bridge.start()

        transport = servers.transports["search"]
        assert [r.method for r in transport.requests] == ["initialize", "tools/list"]
        assert transport.notifications == [("notifications/initialized", None)]

    @pytest.mark.asyncio
    async def test_config_prefix_and_timeout(self):
        servers = FakeServers(search=[SEARCH_TOOL])
        mcp = MCPConfig(tool_prefix="ext_", timeout=2.5, servers={"search": {"command": "s"}})
        bridge = MCPBridge(ToolRegistry(), mcp, transport_factory=servers)

        await bridge.start()

        assert bridge.tools_for("search") == ["ext_search"]
        assert bridge.proxy_for("search").timeout == 2.5

    @pytest.mark.asyncio
    async def test_disabled_servers_are_skipped(self):
        servers = FakeServers(search=[SEARCH_TOOL], web=[FETCH_TOOL])
        bridge = MCPBridge(ToolRegistry(), config(search={}, web={"enabled": False}), transport_factory=servers)

        await bridge.start()

        assert bridge.servers == ["search"]
        assert [name for name, _ in servers.created] == ["search"]

    @pytest.mark.asyncio
    async def test_disabled_bridge_starts_nothing(self):
        servers = FakeServers(search=[SEARCH_TOOL])
        mcp = MCPConfig(enabled=False, servers={"search": {"command": "s"}})

        assert await MCPBridge(ToolRegistry(), mcp, transport_factory=servers).start() == {}
        assert servers.created == []

    @pytest.mark.asyncio
    async def test_failure_names_the_server(self):
        servers = FakeServers(search=[SEARCH_TOOL])
        servers.transports["search"].start_error = OSError("no such binary")
        bridge = MCPBridge(ToolRegistry(), config(search={}), transport_factory=servers)

        with pytest.raises(MCPConnectionError, match="MCP server 'search' failed to start"):
            await bridge.start()

    @pytest.mark.asyncio
    async def test_skip_failed_records_failures(self, caplog):
        registry = ToolRegistry()
        servers = FakeServers(
            broken=[{"name": "bad", "inputSchema": {"anyOf": []}}],
            web=[FETCH_TOOL],
        )
        bridge = MCPBridge(registry, config(broken={}, web={}), transport_factory=servers)

        await bridge.start(skip_failed=True)

        assert list(bridge.failures) == ["broken"]
        assert "anyOf" in bridge.failures["broken"]
        assert bridge.servers == ["web"]
        assert not registry.has("mcp_bad")
        assert servers.transports["broken"].closes == 1
        assert "MCP server 'broken' failed to start" in caplog.text


    @pytest.mark.asyncio
    async def test_malformed_tool_list_is_skipped(self):
        servers = FakeServers(broken=[{"description": "no name"}], web=[FETCH_TOOL])
        bridge = MCPBridge(ToolRegistry(), config(broken={}, web={}), transport_factory=servers)

        await bridge.start(skip_failed=True)

        assert "Malformed tools/list result" in bridge.failures["broken"]
        assert bridge.servers == ["web"]
        assert servers.transports["broken"].closes == 1
        assert not servers.transports["broken"].is_active()

    @pytest.mark.asyncio
    async def test_unexpected_error_still_disconnects(self, monkeypatch):
        servers = FakeServers(search=[SEARCH_TOOL])

        async def explode(self):
            raise RuntimeError("discovery crashed")

        monkeypatch.setattr(MCPProxy, "discover_tools", explode)
        bridge = MCPBridge(ToolRegistry(), config(search={}), transport_factory=servers)

        with pytest.raises(RuntimeError):
            await bridge.start()

        assert servers.transports["search"].closes == 1


class TestRefreshAndStop:
    @pytest.mark.asyncio
    async def test_refresh_replaces_server_tools(self):
        registry = ToolRegistry()
        servers = FakeServers(search=[SEARCH_TOOL])
        bridge = MCPBridge(registry, config(search={}), transport_factory=servers)
        await bridge.start()

        servers.transports["search"].handlers.update(mcp_server(tools=[FETCH_TOOL]))
        tools = await bridge.refresh("search")

        assert tools == ["mcp_fetch"]
        assert not registry.has("mcp_search")
        assert registry.has("mcp_fetch")

    @pytest.mark.asyncio
    async def test_refresh_unknown_server(self):
        bridge = MCPBridge(ToolRegistry(), config())

        with pytest.raises(MCPConnectionError, match="not connected"):
            await bridge.refresh("ghost")

    @pytest.mark.asyncio
    async def test_stop_disconnects_and_unregisters(self):
        registry = ToolRegistry()
        registry.register(define_tool("mcp_local", "Local tool with a colliding prefix", dict, lambda p, c: ok()))
        servers = FakeServers(search=[SEARCH_TOOL])
        bridge = MCPBridge(registry, config(search={}), transport_factory=servers)
        await bridge.start()

        await bridge.stop()

        assert not registry.has("mcp_search")
        assert registry.has("mcp_local")
        assert bridge.servers == []
        assert bridge.tools_for("search") == []
        assert servers.transports["search"].closes == 1

    @pytest.mark.asyncio
    async def test_shared_name_keeps_the_live_tool(self, caplog):
        registry = ToolRegistry()
        servers = FakeServers(a=[SEARCH_TOOL], b=[SEARCH_TOOL])
        bridge = MCPBridge(registry, config(a={}, b={}), transport_factory=servers)

        await bridge.start()

        assert "MCP tool 'mcp_search' from server 'b' replaces the one from server 'a'" in caplog.text

        servers.transports["a"].handlers.update(mcp_server(tools=[FETCH_TOOL]))
        await bridge.refresh("a")

        assert registry.has("mcp_search")
        assert registry.has("mcp_fetch")
        assert bridge.tools_for("b") == ["mcp_search"]

    @pytest.mark.asyncio
    async def test_emptied_server_leaves_shared_name(self):
        registry = ToolRegistry()
        servers = FakeServers(a=[SEARCH_TOOL], b=[SEARCH_TOOL])
        bridge = MCPBridge(registry, config(a={}, b={}), transport_factory=servers)
        await bridge.start()
        live = registry.get("mcp_search")

        servers.transports["a"].handlers.update(mcp_server(tools=[]))
        await bridge.refresh("a")

        assert registry.get("mcp_search") is live
        assert bridge.tools_for("a") == []

    @pytest.mark.asyncio
    async def test_context_manager(self):
        registry = ToolRegistry()
        servers = FakeServers(search=[SEARCH_TOOL])

        async with MCPBridge(registry, config(search={}), transport_factory=servers):
            assert registry.has("mcp_search")

        assert not registry.has("mcp_search")


class TestDefaultFactory:
    def test_builds_stdio_transport(self):
        server = MCPServerConfig(command="npx", args=["-y", "server"], env={"A": "1"}, cwd="/srv")

        transport = stdio_transport_factory("fs", server)

        assert isinstance(transport, StdioTransport)
        assert transport.command == "npx"
        assert transport.args == ["-y", "server"]
        assert transport.env == {"A": "1"}
        assert transport.cwd == "/srv"
