"""MCP server communication: the Transport contract and a stdio subprocess transport."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

from toolbridge.errors import MCPConnectionError
from toolbridge.mcp.models import JSONRPCNotification, JSONRPCRequest, JSONRPCResponse

logger = logging.getLogger(__name__)

# Tool listings with large schemas easily exceed asyncio's 64 KiB line default.
STREAM_LIMIT = 16 * 1024 * 1024


@runtime_checkable
class Transport(Protocol):
    """
    A bidirectional channel to one MCP server.

    ``send`` is a single round trip: it returns the response correlated with
    the given request. Matching responses to requests by id is the
    transport's job, so callers may have several requests in flight.
    """

    async def start(self) -> None: ...

    async def close(self) -> None: ...

    def is_active(self) -> bool: ...

    async def send(self, request: JSONRPCRequest) -> JSONRPCResponse: ...


class StdioTransport:
    """
    Communicate with an MCP server over stdin/stdout (newline-delimited JSON-RPC).

    A background reader task resolves pending requests by id. Notifications
    and requests initiated by the server are logged and dropped.
    """

    def __init__(
        self,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ):
        self.command = command
        self.args = args or []
        self.env = env or {}
        self.cwd = cwd
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.Task] = None
        self._stderr_reader: Optional[asyncio.Task] = None
        self._pending: Dict[Union[int, str], asyncio.Future] = {}
        self._write_lock = asyncio.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Spawn the MCP server subprocess."""
        if self.is_active():
            return  # already running

        merged_env = {**os.environ, **self.env}
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=merged_env,
                cwd=self.cwd,
                limit=STREAM_LIMIT,
            )
        except FileNotFoundError as exc:
            raise MCPConnectionError(
                f"MCP server command not found: {self.command}. "
                "Make sure the server package is installed.",
                cause=exc,
            )
        except OSError as exc:
            raise MCPConnectionError(f"Failed to start MCP server {self.command}: {exc}", cause=exc)

        logger.debug(f"Started MCP server {self.command} (pid {self._process.pid})")
        self._reader = asyncio.create_task(self._read_stdout(self._process))
        self._stderr_reader = asyncio.create_task(self._read_stderr(self._process))

    async def close(self) -> None:
        """Terminate the MCP server subprocess and fail anything still pending."""
        process, self._process = self._process, None
        if process is not None:
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()
            if process.returncode is None:
                try:
                    process.terminate()
                    await asyncio.wait_for(process.wait(), timeout=5)
                except ProcessLookupError:
                    pass
                except asyncio.TimeoutError:
                    process.kill()
                    await process.wait()
            logger.debug(f"Stopped MCP server {self.command}")

        for task in (self._reader, self._stderr_reader):
            if task is not None and not task.done():
                task.cancel()
        self._reader = self._stderr_reader = None
        self._fail_pending(MCPConnectionError("MCP transport closed"))

    def is_active(self) -> bool:
        return (
            self._process is not None
            and self._process.returncode is None
            and self._reader is not None
            and not self._reader.done()
        )

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    async def send(self, request: JSONRPCRequest) -> JSONRPCResponse:
        """Write a request and wait for the response carrying the same id."""
        if not self.is_active():
            raise MCPConnectionError("MCP transport is not running")

        future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future
        try:
            await self._write(request.model_dump(exclude_none=True))
            return await future
        finally:
            self._pending.pop(request.id, None)

    async def notify(self, method: str, params: Any = None) -> None:
        """Send a notification; no response is expected."""
        if not self.is_active():
            raise MCPConnectionError("MCP transport is not running")
        notification = JSONRPCNotification(method=method, params=params)
        await self._write(notification.model_dump(exclude_none=True))

    async def _write(self, payload: Dict[str, Any]) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise MCPConnectionError("MCP transport is not running")
        line = json.dumps(payload) + "\n"
        async with self._write_lock:
            try:
                process.stdin.write(line.encode())
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError, OSError) as exc:
                raise MCPConnectionError(f"MCP transport error: {exc}", cause=exc)

    # ── Readers ───────────────────────────────────────────────────────────

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        try:
            while True:
                raw = await process.stdout.readline()
                if not raw:
                    break
                line = raw.decode(errors="replace").strip()
                if line:
                    self._dispatch(line)
        except (ValueError, OSError) as exc:
            logger.warning(f"MCP server {self.command} stream error: {exc}")
        finally:
            self._fail_pending(MCPConnectionError("MCP server closed connection"))

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        try:
            while True:
                raw = await process.stderr.readline()
                if not raw:
                    return
                logger.debug(f"[{self.command}] {raw.decode(errors='replace').rstrip()}")
        except (ValueError, OSError) as exc:
            logger.warning(f"MCP server {self.command} stderr error: {exc}")

    def _dispatch(self, line: str) -> None:
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Dropping non-JSON output from {self.command}: {line[:200]}")
            return

        if not isinstance(message, dict) or "id" not in message or "method" in message:
            logger.debug(f"Dropping unsolicited message from {self.command}: {line[:200]}")
            return

        future = self._pending.get(message["id"])
        if future is None or future.done():
            logger.debug(f"Dropping response for unknown id {message['id']!r}")
            return
        try:
            future.set_result(JSONRPCResponse.model_validate(message))
        except ValueError as exc:
            future.set_exception(MCPConnectionError(f"Malformed JSON-RPC response: {exc}", cause=exc))

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
