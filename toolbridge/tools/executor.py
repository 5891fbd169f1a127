"""Tool executor — permission-gated, timeout- and abort-bounded tool calls."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel

from toolbridge.errors import PermissionDeniedError, ToolNotFoundError
from toolbridge.tools.permissions import PermissionChecker, PermissionDecision
from toolbridge.tools.registry import ToolRegistry
from toolbridge.tools.types import (
    ExecutionResult,
    ExecutionTiming,
    Tool,
    ToolContext,
    ToolExecutionLog,
    ToolKind,
    ToolResult,
    fail,
    invalid,
    ok,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
SHELL_TIMEOUT = 120.0

VALIDATION_FAILED = "Validation failed: "

SENSITIVE_KEYS = frozenset({
    "content",
    "data",
    "body",
    "text",
    "secret",
    "password",
    "token",
    "key",
    "auth",
    "credential",
    "diff",
    "patch",
    "search",
    "replace",
})


def sanitize_params_for_logging(params: Any) -> Dict[str, Any]:
    """Redact sensitive values and shorten the rest so params are safe to log."""
    if isinstance(params, BaseModel):
        params = params.model_dump()
    if not isinstance(params, dict):
        return {}

    sanitized: Dict[str, Any] = {}
    for key, value in params.items():
        if str(key).lower() in SENSITIVE_KEYS:
            if isinstance(value, str):
                sanitized[key] = f"[REDACTED: {len(value)} chars]"
            elif isinstance(value, (list, tuple)):
                sanitized[key] = f"[REDACTED: {len(value)} items]"
            else:
                sanitized[key] = "[REDACTED]"
        elif isinstance(value, str):
            sanitized[key] = value if len(value) <= 200 else f"{value[:200]}..."
        elif isinstance(value, (bool, int, float)) or value is None:
            sanitized[key] = value
        elif isinstance(value, (list, tuple)):
            sanitized[key] = f"[Array: {len(value)} items]"
        else:
            sanitized[key] = "[Object]"
    return sanitized


class PermissionCheckOutcome(BaseModel):
    """Tagged outcome of ``execute_with_permission_check``."""

    status: str  # completed, permission_required, denied, not_found
    tool_name: str
    result: Optional[ExecutionResult] = None
    params: Any = None
    error: Optional[str] = None


class _Clock:
    """Epoch-millisecond start time with a monotonic duration."""

    def __init__(self):
        self.started_at = int(time.time() * 1000)
        self._t0 = time.perf_counter()

    def timing(self) -> ExecutionTiming:
        duration_ms = int((time.perf_counter() - self._t0) * 1000)
        return ExecutionTiming(
            started_at=self.started_at,
            completed_at=self.started_at + duration_ms,
            duration_ms=duration_ms,
        )


def _consume_outcome(task: "asyncio.Future[Any]") -> None:
    # A losing tool task may still finish later; mark its exception retrieved.
    if not task.cancelled():
        task.exception()


class ToolExecutor:
    """
    Runs tools by name on behalf of the agent loop.

    Every call goes through the same pipeline:
    lookup -> permission -> schema validation -> custom validation ->
    body raced against a timeout and the abort signal -> timed result.

    Missing tools and refused permissions raise; everything that can go
    wrong once the tool is allowed to run comes back as a failed
    ``ExecutionResult`` instead.

    Example:
        >>> executor = ToolExecutor()
        >>> executor.register_tool(read_file_tool)
        >>> result = await executor.execute("read_file", {"path": "README.md"}, ctx)
        >>> result.result.success
        True
    """

    def __init__(
        self,
        registry: Optional[ToolRegistry] = None,
        permission_checker: Optional[PermissionChecker] = None,
        default_timeout: float = DEFAULT_TIMEOUT,
        shell_timeout: float = SHELL_TIMEOUT,
        enable_logging: bool = True,
    ):
        self.registry = registry if registry is not None else ToolRegistry()
        self.permission_checker = permission_checker
        self.default_timeout = default_timeout
        self.shell_timeout = shell_timeout
        self.enable_logging = enable_logging

    # ── Registry delegation ───────────────────────────────────────────────

    def register_tool(self, tool: Tool) -> None:
        self.registry.register(tool)

    def get_tool(self, name: str) -> Optional[Tool]:
        return self.registry.get(name)

    def has_tool(self, name: str) -> bool:
        return self.registry.has(name)

    def list_tools(self):
        return self.registry.list()

    def get_original_name(self, name: str) -> str:
        return self.registry.get_original_name(name)

    # ── Permission ────────────────────────────────────────────────────────

    async def check_permission(
        self, tool_name: str, params: Any, context: ToolContext
    ) -> PermissionDecision:
        """Ask the configured checker; no checker means allow."""
        if self.permission_checker is None:
            return PermissionDecision.ALLOW
        decision = await self.permission_checker(tool_name, params, context)
        return PermissionDecision(decision)

    # ── Execution ─────────────────────────────────────────────────────────

    async def execute(
        self,
        name: str,
        params: Any,
        context: ToolContext,
        timeout: Optional[float] = None,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        """
        Execute a tool by name.

        Args:
            name: Tool name, matched case-insensitively.
            params: Raw, unvalidated parameters.
            context: Per-call context; its ``abort_signal`` is used when no
                explicit ``abort_signal`` is given.
            timeout: Seconds before the call is abandoned. Defaults to the
                shell or default timeout depending on the tool kind.
            abort_signal: Event that cancels the call when set.

        Raises:
            ToolNotFoundError: No tool matches ``name``.
            PermissionDeniedError: The decision was ``deny`` or ``ask``.
        """
        clock = _Clock()
        tool = self.registry.get(name)
        if tool is None:
            raise ToolNotFoundError(name)

        decision = await self.check_permission(name, params, context)
        if decision == PermissionDecision.DENY:
            raise PermissionDeniedError(name)
        if decision == PermissionDecision.ASK:
            raise PermissionDeniedError(name, f"User confirmation required for tool: {name}")

        return await self._execute_permitted(tool, params, context, clock, timeout, abort_signal)

    async def execute_with_permission_check(
        self,
        name: str,
        params: Any,
        context: ToolContext,
        timeout: Optional[float] = None,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> PermissionCheckOutcome:
        """Non-raising variant of ``execute`` for confirm-and-retry loops."""
        clock = _Clock()
        tool = self.registry.get(name)
        if tool is None:
            return PermissionCheckOutcome(status="not_found", tool_name=name)

        decision = await self.check_permission(name, params, context)
        if decision == PermissionDecision.DENY:
            return PermissionCheckOutcome(
                status="denied",
                tool_name=name,
                error=f"Permission denied for tool: {name}",
            )
        if decision == PermissionDecision.ASK:
            return PermissionCheckOutcome(
                status="permission_required",
                tool_name=name,
                params=params,
            )

        result = await self._execute_permitted(tool, params, context, clock, timeout, abort_signal)
        return PermissionCheckOutcome(status="completed", tool_name=name, result=result)

    def timeout_for(self, tool: Tool) -> float:
        return self.shell_timeout if tool.kind == ToolKind.SHELL else self.default_timeout

    async def _execute_permitted(
        self,
        tool: Tool,
        params: Any,
        context: ToolContext,
        clock: _Clock,
        timeout: Optional[float],
        abort_signal: Optional[asyncio.Event],
    ) -> ExecutionResult:
        tool_name = self.registry.get_original_name(tool.name)

        parsed = tool.parameters.safe_parse(params)
        if not parsed.success:
            return self._finish(tool_name, params, context, clock, fail(VALIDATION_FAILED + parsed.error))

        if tool.validate is not None:
            try:
                check = tool.validate(parsed.data)
            except Exception as exc:
                check = invalid(str(exc))
            if not check.ok:
                return self._finish(
                    tool_name, params, context, clock, fail(VALIDATION_FAILED + str(check.error))
                )

        if timeout is None:
            timeout = self.timeout_for(tool)
        if abort_signal is None:
            abort_signal = context.abort_signal

        return await self._run_with_timeout_and_abort(
            tool, tool_name, parsed.data, context, clock, timeout, abort_signal
        )

    async def _run_with_timeout_and_abort(
        self,
        tool: Tool,
        tool_name: str,
        input: Any,
        context: ToolContext,
        clock: _Clock,
        timeout: float,
        abort_signal: Optional[asyncio.Event],
    ) -> ExecutionResult:
        if abort_signal is not None and abort_signal.is_set():
            return self._finish(
                tool_name, input, context, clock,
                fail(f"Tool execution aborted: {tool_name}"), aborted=True,
            )

        task = asyncio.ensure_future(tool.run(input, context))
        task.add_done_callback(_consume_outcome)
        waiters = {task}
        abort_waiter = None
        if abort_signal is not None:
            abort_waiter = asyncio.ensure_future(abort_signal.wait())
            waiters.add(abort_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if abort_waiter is not None and not abort_waiter.done():
                abort_waiter.cancel()
            if not task.done():
                # Lost the race (or the caller cancelled us): stop the body, best effort.
                task.cancel()

        if task in done:
            if task.cancelled():
                return self._finish(
                    tool_name, input, context, clock,
                    fail(f"Tool execution cancelled: {tool_name}"),
                )
            error = task.exception()
            if error is not None:
                return self._finish(
                    tool_name, input, context, clock, fail(str(error) or type(error).__name__)
                )
            outcome = task.result()
            if not isinstance(outcome, ToolResult):
                outcome = ok(outcome)
            return self._finish(tool_name, input, context, clock, outcome)

        if abort_waiter is not None and abort_waiter in done:
            return self._finish(
                tool_name, input, context, clock,
                fail(f"Tool execution aborted: {tool_name}"), aborted=True,
            )

        return self._finish(
            tool_name, input, context, clock,
            fail(f"Tool execution timed out after {round(timeout * 1000)}ms: {tool_name}"),
            timed_out=True,
        )

    # ── Result packaging ──────────────────────────────────────────────────

    def _finish(
        self,
        tool_name: str,
        params: Any,
        context: ToolContext,
        clock: _Clock,
        result: ToolResult,
        timed_out: Optional[bool] = None,
        aborted: Optional[bool] = None,
    ) -> ExecutionResult:
        timing = clock.timing()
        if self.enable_logging:
            self._log_execution(tool_name, params, context, timing, result, timed_out, aborted)
        return ExecutionResult(
            result=result,
            timing=timing,
            tool_name=tool_name,
            call_id=context.call_id,
            timed_out=timed_out,
            aborted=aborted,
        )

    def _log_execution(
        self,
        tool_name: str,
        params: Any,
        context: ToolContext,
        timing: ExecutionTiming,
        result: ToolResult,
        timed_out: Optional[bool],
        aborted: Optional[bool],
    ) -> None:
        if timed_out:
            result_type = "timeout"
        elif aborted:
            result_type = "aborted"
        else:
            result_type = "success" if result.success else "failure"

        entry = ToolExecutionLog(
            tool=tool_name,
            params=sanitize_params_for_logging(params),
            result_type=result_type,
            duration_ms=timing.duration_ms,
            error=None if result.success else result.error,
            call_id=context.call_id,
            timestamp=datetime.fromtimestamp(timing.started_at / 1000, timezone.utc).isoformat(),
        )
        level = logging.DEBUG if result_type == "success" else logging.WARNING
        logger.log(level, "Tool execution: %s", entry.model_dump_json())
