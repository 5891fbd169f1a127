"""
Toolbridge validation module.

This module provides configuration validation and schema enforcement.
"""

from toolbridge.errors import ConfigError
from toolbridge.validation.config import (
    Config,
    ExecutorConfig,
    LoggingConfig,
    MCPConfig,
    MCPServerConfig,
    ToolbridgeConfig,
)

__all__ = [
    "Config",
    "ConfigError",
    "ExecutorConfig",
    "LoggingConfig",
    "MCPConfig",
    "MCPServerConfig",
    "ToolbridgeConfig",
]
