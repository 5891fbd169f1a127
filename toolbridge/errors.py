"""Error taxonomy for tool execution and MCP bridging."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    TOOL_PERMISSION_DENIED = "TOOL_PERMISSION_DENIED"
    SCHEMA_UNSUPPORTED = "SCHEMA_UNSUPPORTED"
    MCP_CONNECTION = "MCP_CONNECTION"
    MCP_PROTOCOL = "MCP_PROTOCOL"
    MCP_TIMEOUT = "MCP_TIMEOUT"
    CONFIG_INVALID = "CONFIG_INVALID"


class ToolBridgeError(Exception):
    """
    Base class for every error raised by toolbridge.

    Carries a machine-readable ``code``, whether a retry may succeed, and an
    optional suggested delay (seconds) before retrying.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        *,
        retryable: bool = False,
        retry_delay: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable
        self.retry_delay = retry_delay
        self.context = context or {}
        if cause is not None:
            self.__cause__ = cause


class ToolNotFoundError(ToolBridgeError):
    """No registered tool matches the requested name."""

    def __init__(self, tool_name: str):
        super().__init__(
            f"Tool not found: {tool_name}",
            ErrorCode.TOOL_NOT_FOUND,
            context={"tool_name": tool_name},
        )
        self.tool_name = tool_name


class PermissionDeniedError(ToolBridgeError):
    """The permission decision was ``deny``, or ``ask`` without confirmation."""

    def __init__(self, tool_name: str, message: Optional[str] = None):
        super().__init__(
            message or f"Permission denied for tool: {tool_name}",
            ErrorCode.TOOL_PERMISSION_DENIED,
            context={"tool_name": tool_name},
        )
        self.tool_name = tool_name


class SchemaTranslationError(ToolBridgeError):
    """A JSON Schema uses a construct the translator does not support."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.SCHEMA_UNSUPPORTED)


class MCPError(ToolBridgeError):
    """Base class for MCP transport and protocol failures."""


class MCPConnectionError(MCPError):
    """Transport not started, dropped, or failed to start."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(
            message,
            ErrorCode.MCP_CONNECTION,
            retryable=True,
            retry_delay=1.0,
            cause=cause,
        )


class MCPProtocolError(MCPError):
    """The remote side answered with an error envelope or a malformed result."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        remote_message: Optional[str] = None,
        data: Any = None,
    ):
        super().__init__(
            message,
            ErrorCode.MCP_PROTOCOL,
            context={"code": code, "message": remote_message},
        )
        self.rpc_code = code
        self.remote_message = remote_message
        self.data = data


class MCPTimeoutError(MCPError):
    """No response arrived within the configured timeout."""

    def __init__(self, message: str, timeout: float):
        super().__init__(
            message,
            ErrorCode.MCP_TIMEOUT,
            retryable=True,
            retry_delay=0.5,
            context={"timeout": timeout},
        )
        self.timeout = timeout


class ConfigError(ToolBridgeError):
    """Raised when there's a configuration error."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIG_INVALID)
