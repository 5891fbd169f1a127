"""Tool model, registry, permission mediation and the executor."""

from toolbridge.tools.executor import PermissionCheckOutcome, ToolExecutor, sanitize_params_for_logging
from toolbridge.tools.permissions import (
    PermissionConfig,
    PermissionDecision,
    PermissionRule,
    RulePermissionChecker,
    allow_all,
)
from toolbridge.tools.registry import ToolRegistry
from toolbridge.tools.types import (
    ExecutionResult,
    ExecutionTiming,
    ParameterSchema,
    Tool,
    ToolContext,
    ToolKind,
    ToolResult,
    ValidationResult,
    define_tool,
    fail,
    invalid,
    ok,
    valid,
)

__all__ = [
    "ExecutionResult",
    "ExecutionTiming",
    "ParameterSchema",
    "PermissionCheckOutcome",
    "PermissionConfig",
    "PermissionDecision",
    "PermissionRule",
    "RulePermissionChecker",
    "Tool",
    "ToolContext",
    "ToolExecutor",
    "ToolKind",
    "ToolRegistry",
    "ToolResult",
    "ValidationResult",
    "allow_all",
    "define_tool",
    "fail",
    "invalid",
    "ok",
    "sanitize_params_for_logging",
    "valid",
]
