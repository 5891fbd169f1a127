"""
Toolbridge - tool execution and MCP capability bridging for agent CLIs.

Local tools and tools discovered on MCP servers live in one registry and run
through one executor:

- Permission check before every call (allow / ask / deny)
- Inputs validated against pydantic models or translated JSON Schema
- Every call raced against a timeout and an abort signal
- Failures returned as values, with timing attached
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

from toolbridge.errors import (
    ConfigError,
    ErrorCode,
    MCPConnectionError,
    MCPError,
    MCPProtocolError,
    MCPTimeoutError,
    PermissionDeniedError,
    SchemaTranslationError,
    ToolBridgeError,
    ToolNotFoundError,
)
from toolbridge.tools import (
    ExecutionResult,
    PermissionDecision,
    Tool,
    ToolContext,
    ToolExecutor,
    ToolKind,
    ToolRegistry,
    ToolResult,
    define_tool,
)

__all__ = [
    "ConfigError",
    "ErrorCode",
    "ExecutionResult",
    "MCPConnectionError",
    "MCPError",
    "MCPProtocolError",
    "MCPTimeoutError",
    "PermissionDecision",
    "PermissionDeniedError",
    "SchemaTranslationError",
    "Tool",
    "ToolBridgeError",
    "ToolContext",
    "ToolExecutor",
    "ToolKind",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "define_tool",
    "__version__",
]
