"""
MCP bridging: JSON-RPC over a transport, schema translation, and proxies
that expose remote MCP tools as local Tool instances.
"""

from toolbridge.mcp.bridge import MCPBridge
from toolbridge.mcp.jsonrpc import JSONRPCClient
from toolbridge.mcp.proxy import MCPProxy
from toolbridge.mcp.schema import translate
from toolbridge.mcp.transport import StdioTransport, Transport

__all__ = [
    "JSONRPCClient",
    "MCPBridge",
    "MCPProxy",
    "StdioTransport",
    "Transport",
    "translate",
]
