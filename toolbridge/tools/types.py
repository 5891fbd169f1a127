"""Data models for tools, execution contexts, and results."""

from __future__ import annotations

import asyncio
import inspect
import os
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError


class ToolKind(str, Enum):
    """Category of a tool. Used for policy lookup only, never for dispatch."""

    READ = "read"
    WRITE = "write"
    SHELL = "shell"
    MCP = "mcp"
    BROWSER = "browser"
    AGENT = "agent"


# ── Results ───────────────────────────────────────────────────────────────


class ToolResult(BaseModel):
    """Outcome of a tool body: success with an opaque output, or an error string."""

    success: bool
    output: Any = None
    error: Optional[str] = None


def ok(output: Any = None) -> ToolResult:
    return ToolResult(success=True, output=output)


def fail(error: str) -> ToolResult:
    return ToolResult(success=False, error=error)


class ExecutionTiming(BaseModel):
    """Wall-clock timing in epoch milliseconds."""

    started_at: int
    completed_at: int
    duration_ms: int


class ExecutionResult(BaseModel):
    """A ToolResult wrapped with timing and call metadata."""

    result: ToolResult
    timing: ExecutionTiming
    tool_name: str
    call_id: str
    timed_out: Optional[bool] = None
    aborted: Optional[bool] = None

    @property
    def success(self) -> bool:
        return self.result.success


@dataclass
class ValidationResult:
    """Result of a tool's cross-field ``validate`` hook."""

    ok: bool
    error: Optional[str] = None


def valid() -> ValidationResult:
    return ValidationResult(ok=True)


def invalid(error: str) -> ValidationResult:
    return ValidationResult(ok=False, error=error)


# ── Parameters ────────────────────────────────────────────────────────────


@dataclass
class ParseResult:
    success: bool
    data: Any = None
    error: Optional[str] = None


def format_validation_error(exc: ValidationError) -> str:
    """Flatten pydantic errors into ``path: message`` pairs."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


class ParameterSchema:
    """
    Structured parameter validator shared by local and bridged tools.

    Wraps any annotation pydantic understands. Local tools usually pass a
    ``BaseModel`` subclass; the JSON Schema translator passes a generated
    type plus the original schema and a ``postprocess`` hook that turns
    validated models back into plain JSON-shaped data.
    """

    def __init__(
        self,
        annotation: Any,
        source: Optional[Dict[str, Any]] = None,
        postprocess: Optional[Callable[[Any], Any]] = None,
    ):
        self.annotation = annotation
        self.source = source
        self._postprocess = postprocess
        self._adapter = TypeAdapter(annotation)

    @classmethod
    def of(cls, value: Union["ParameterSchema", Any]) -> "ParameterSchema":
        if isinstance(value, ParameterSchema):
            return value
        return cls(value)

    def safe_parse(self, value: Any) -> ParseResult:
        try:
            data = self._adapter.validate_python(value)
        except ValidationError as exc:
            return ParseResult(success=False, error=format_validation_error(exc))
        if self._postprocess is not None:
            data = self._postprocess(data)
        return ParseResult(success=True, data=data)

    def json_schema(self) -> Dict[str, Any]:
        if self.source is not None:
            return self.source
        return self._adapter.json_schema(by_alias=True)


# ── Context & Tool ────────────────────────────────────────────────────────


PermissionCallback = Callable[[str, Any], Awaitable[bool]]


@dataclass
class ToolContext:
    """Per-call execution environment, created fresh by the caller."""

    working_dir: str
    session_id: str = ""
    message_id: str = ""
    call_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    abort_signal: Optional[asyncio.Event] = None
    check_permission: Optional[PermissionCallback] = None

    @classmethod
    def create(
        cls,
        working_dir: Optional[str] = None,
        session_id: str = "",
        message_id: str = "",
        abort_signal: Optional[asyncio.Event] = None,
        check_permission: Optional[PermissionCallback] = None,
    ) -> "ToolContext":
        """Fresh context with a new call id; ``working_dir`` defaults to the cwd."""
        return cls(
            working_dir=working_dir or os.getcwd(),
            session_id=session_id,
            message_id=message_id,
            abort_signal=abort_signal,
            check_permission=check_permission,
        )

    @property
    def aborted(self) -> bool:
        return self.abort_signal is not None and self.abort_signal.is_set()


ToolBody = Callable[[Any, ToolContext], Union[ToolResult, Awaitable[ToolResult], Any]]


@dataclass
class Tool:
    """
    A named, schema-validated capability.

    ``execute`` may be a coroutine function or a plain function; plain
    functions are run in a worker thread so they never block the event loop.
    """

    name: str
    description: str
    parameters: ParameterSchema
    execute: ToolBody
    kind: ToolKind = ToolKind.READ
    validate: Optional[Callable[[Any], ValidationResult]] = None
    enabled: bool = True
    category: Optional[str] = None

    async def run(self, input: Any, context: ToolContext) -> Any:
        if inspect.iscoroutinefunction(self.execute):
            return await self.execute(input, context)
        result = await asyncio.to_thread(self.execute, input, context)
        if inspect.isawaitable(result):
            result = await result
        return result


def define_tool(
    name: str,
    description: str,
    parameters: Any,
    execute: ToolBody,
    kind: Union[ToolKind, str] = ToolKind.READ,
    validate: Optional[Callable[[Any], ValidationResult]] = None,
    enabled: bool = True,
    category: Optional[str] = None,
) -> Tool:
    """Build a Tool, accepting a model class or a ParameterSchema for parameters."""
    return Tool(
        name=name,
        description=description,
        parameters=ParameterSchema.of(parameters),
        execute=execute,
        kind=ToolKind(kind),
        validate=validate,
        enabled=enabled,
        category=category,
    )


class ToolExecutionLog(BaseModel):
    """Structured log entry emitted once per completed execution."""

    tool: str
    params: Dict[str, Any] = Field(default_factory=dict)
    result_type: str  # success, failure, timeout, aborted
    duration_ms: int
    error: Optional[str] = None
    call_id: str
    timestamp: str
