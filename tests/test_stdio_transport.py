"""Tests for the stdio transport against a tiny MCP server subprocess."""

import asyncio
import sys
import textwrap

import pytest

from toolbridge.errors import MCPConnectionError, MCPProtocolError
from toolbridge.mcp import transport as transport_module
from toolbridge.mcp.jsonrpc import JSONRPCClient
from toolbridge.mcp.proxy import MCPProxy
from toolbridge.mcp.transport import StdioTransport, Transport
from toolbridge.tools.executor import ToolExecutor
from toolbridge.tools.types import ToolContext

SERVER = textwrap.dedent("""
    import json
    import sys

    def send(message):
        sys.stdout.write(json.dumps(message) + "\\n")
        sys.stdout.flush()

    print("tiny server booting", flush=True)
    print("debug output", file=sys.stderr, flush=True)

    while True:
        line = sys.stdin.readline()
        if not line:
            break
        message = json.loads(line)
        if "id" not in message:
            continue
        method = message["method"]
        if method == "initialize":
            result = {
                "protocolVersion": message["params"]["protocolVersion"],
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "tiny", "version": "1.0"},
            }
        elif method == "tools/list":
            result = {"tools": [{
                "name": "echo",
                "description": "Echo text back",
                "inputSchema": {
                    "type": "object",
                    "properties": {"text": {"type": "string"}},
                    "required": ["text"],
                },
            }]}
        elif method == "tools/call":
            send({"jsonrpc": "2.0", "method": "notifications/progress", "params": {}})
            text = message["params"]["arguments"]["text"]
            result = {"content": [{"type": "text", "text": text}]}
        elif method == "crash":
            sys.exit(1)
        else:
            send({"jsonrpc": "2.0", "id": message["id"],
                  "error": {"code": -32601, "message": "Method not found"}})
            continue
        send({"jsonrpc": "2.0", "id": message["id"], "result": result})
""")


NOISY_SERVER = 'import sys; sys.stderr.write("x" * 4096 + "\\n"); sys.stderr.flush()\n' + SERVER


@pytest.fixture
def server_transport():
    return StdioTransport(sys.executable, ["-c", SERVER])


class TestStdioTransport:
    def test_satisfies_transport_protocol(self, server_transport):
        assert isinstance(server_transport, Transport)

    @pytest.mark.asyncio
    async def test_full_round_trip(self, server_transport):
        async with MCPProxy(server_transport) as proxy:
            info = await proxy.initialize()
            (tool,) = await proxy.discover_tools()
            executor = ToolExecutor()
            executor.register_tool(tool)

            result = await executor.execute("mcp_echo", {"text": "hello"}, ToolContext.create())

        assert info["serverInfo"]["name"] == "tiny"
        assert tool.description == "Echo text back"
        assert result.success
        assert result.result.output == [{"type": "text", "text": "hello"}]
        assert not server_transport.is_active()

    @pytest.mark.asyncio
    async def test_error_response(self, server_transport):
        await server_transport.start()
        try:
            with pytest.raises(MCPProtocolError, match="Method not found"):
                await JSONRPCClient(server_transport, timeout=5).request("resources/list")
        finally:
            await server_transport.close()

    @pytest.mark.asyncio
    async def test_server_exit_fails_pending_request(self, server_transport):
        await server_transport.start()
        try:
            with pytest.raises(MCPConnectionError):
                await JSONRPCClient(server_transport, timeout=5).request("crash")
        finally:
            await server_transport.close()

        assert not server_transport.is_active()

    @pytest.mark.asyncio
    async def test_missing_command(self):
        transport = StdioTransport("toolbridge-no-such-server-binary")

        with pytest.raises(MCPConnectionError, match="command not found"):
            await transport.start()

        assert not transport.is_active()

    @pytest.mark.asyncio
    async def test_send_before_start(self, server_transport):
        with pytest.raises(MCPConnectionError, match="not running"):
            await JSONRPCClient(server_transport).request("tools/list")

    @pytest.mark.asyncio
    async def test_close_is_safe_twice(self, server_transport):
        await server_transport.start()

        await server_transport.close()
        await server_transport.close()

        assert not server_transport.is_active()

    @pytest.mark.asyncio
    async def test_oversized_stderr_line(self, monkeypatch, caplog):
        monkeypatch.setattr(transport_module, "STREAM_LIMIT", 1024)
        transport = StdioTransport(sys.executable, ["-c", NOISY_SERVER])

        async with MCPProxy(transport) as proxy:
            info = await proxy.initialize()
            await asyncio.wait_for(transport._stderr_reader, timeout=5)

        assert info["serverInfo"]["name"] == "tiny"
        assert "stderr error" in caplog.text
