"""
Builtin local tools: file reading/writing, directory listing, and shell.

File tools are plain functions (the executor runs them in a worker thread);
``bash`` is a coroutine so it can kill its subprocess when the call is
cancelled, aborted, or runs past its own timeout.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from toolbridge.tools.registry import ToolRegistry
from toolbridge.tools.types import Tool, ToolContext, ToolKind, ToolResult, define_tool, fail, ok

logger = logging.getLogger(__name__)

MAX_READ_CHARS = 100_000
MAX_LIST_ENTRIES = 1000


def resolve_path(context: ToolContext, path: str) -> Path:
    """Resolve ``path`` against the context working directory."""
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = Path(context.working_dir) / candidate
    return candidate.resolve()


# ── read_file ─────────────────────────────────────────────────────────────


class ReadFileParams(BaseModel):
    path: str = Field(description="File path, relative to the working directory.")
    offset: int = Field(default=0, ge=0, description="Number of lines to skip.")
    limit: Optional[int] = Field(default=None, gt=0, description="Maximum number of lines to return.")


def read_file(params: ReadFileParams, context: ToolContext) -> ToolResult:
    target = resolve_path(context, params.path)
    if not target.is_file():
        return fail(f"File not found: {params.path}")
    try:
        text = target.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        return fail(f"Failed to read {params.path}: {exc}")

    lines = text.splitlines()
    end = None if params.limit is None else params.offset + params.limit
    out = "\n".join(lines[params.offset:end])
    if len(out) > MAX_READ_CHARS:
        out = out[:MAX_READ_CHARS] + "\n... (truncated)"
    return ok(out)


# ── write_file ────────────────────────────────────────────────────────────


class WriteFileParams(BaseModel):
    path: str = Field(description="File path, relative to the working directory.")
    content: str = Field(description="Full file content.")
    create_dirs: bool = Field(default=True, description="Create missing parent directories.")


def write_file(params: WriteFileParams, context: ToolContext) -> ToolResult:
    target = resolve_path(context, params.path)
    if not target.parent.exists() and not params.create_dirs:
        return fail(f"Directory does not exist: {target.parent}")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(params.content, encoding="utf-8")
    except OSError as exc:
        return fail(f"Failed to write {params.path}: {exc}")
    return ok(f"Wrote {params.path} ({len(params.content)} chars)")


# ── list_dir ──────────────────────────────────────────────────────────────


class ListDirParams(BaseModel):
    path: str = Field(default=".", description="Directory path, relative to the working directory.")
    include_hidden: bool = Field(default=False, description="Include dotfiles.")


def list_dir(params: ListDirParams, context: ToolContext) -> ToolResult:
    target = resolve_path(context, params.path)
    if not target.exists():
        return fail(f"Path not found: {params.path}")
    if not target.is_dir():
        return fail(f"Not a directory: {params.path}")

    entries: List[str] = []
    # Directories first, then files, case-insensitive.
    for child in sorted(target.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower())):
        if not params.include_hidden and child.name.startswith("."):
            continue
        entries.append(child.name + "/" if child.is_dir() else child.name)
        if len(entries) >= MAX_LIST_ENTRIES:
            break
    return ok(entries)


# ── bash ──────────────────────────────────────────────────────────────────


class BashParams(BaseModel):
    command: str = Field(min_length=1, description="Shell command to run.")
    timeout: Optional[float] = Field(default=None, gt=0, description="Timeout in seconds.")


def _kill(process: asyncio.subprocess.Process) -> None:
    # The shell runs in its own session; kill the whole group so commands it
    # spawned do not outlive it and hold the output pipes open.
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _format_output(stdout: bytes, stderr: bytes, returncode: Optional[int]) -> str:
    out = ""
    if stdout:
        out += f"STDOUT:\n{stdout.decode(errors='replace')}\n"
    if stderr:
        out += f"STDERR:\n{stderr.decode(errors='replace')}\n"
    out += f"EXIT_CODE: {returncode}"
    return out


async def bash(params: BashParams, context: ToolContext) -> ToolResult:
    process = await asyncio.create_subprocess_shell(
        params.command,
        cwd=context.working_dir,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=os.environ.copy(),
        start_new_session=True,
    )
    logger.debug(f"bash started (pid {process.pid}): {params.command}")

    communicate = asyncio.ensure_future(process.communicate())
    waiters = {communicate}
    aborted = None
    if context.abort_signal is not None:
        aborted = asyncio.ensure_future(context.abort_signal.wait())
        waiters.add(aborted)

    try:
        done, _ = await asyncio.wait(waiters, timeout=params.timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if aborted is not None:
            aborted.cancel()
        if not communicate.done():
            communicate.cancel()
            _kill(process)

    if communicate not in done:
        await process.wait()
        if aborted is not None and aborted in done:
            return fail(f"Command aborted: {params.command}")
        return fail(f"Command timed out after {params.timeout}s: {params.command}")

    stdout, stderr = communicate.result()
    out = _format_output(stdout, stderr, process.returncode)
    if process.returncode != 0:
        return fail(out)
    return ok(out)


# ── Registration ──────────────────────────────────────────────────────────


def builtin_tools() -> List[Tool]:
    """Fresh instances of every builtin tool."""
    return [
        define_tool(
            "read_file",
            "Read a text file. Optionally skip `offset` lines and return at most `limit` lines.",
            ReadFileParams,
            read_file,
            kind=ToolKind.READ,
            category="filesystem",
        ),
        define_tool(
            "write_file",
            "Create or overwrite a text file with the given content.",
            WriteFileParams,
            write_file,
            kind=ToolKind.WRITE,
            category="filesystem",
        ),
        define_tool(
            "list_dir",
            "List the entries of a directory. Directories carry a trailing slash.",
            ListDirParams,
            list_dir,
            kind=ToolKind.READ,
            category="filesystem",
        ),
        define_tool(
            "bash",
            "Run a shell command in the working directory. Returns stdout, stderr and the exit code.",
            BashParams,
            bash,
            kind=ToolKind.SHELL,
            category="shell",
        ),
    ]


def register_builtin_tools(registry: ToolRegistry) -> List[Tool]:
    tools = builtin_tools()
    for tool in tools:
        registry.register(tool)
    return tools
