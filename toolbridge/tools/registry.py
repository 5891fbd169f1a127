"""Tool registry — case-insensitive lookup over local and bridged tools."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Union

from toolbridge.tools.types import Tool, ToolKind

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Maps lowercase tool names to Tool instances.

    Original casing is kept alongside for display and result packaging.
    Re-registering a name replaces the previous tool (last one wins), which
    is what reconnecting an MCP server relies on.

    Example:
        >>> registry = ToolRegistry()
        >>> registry.register(echo_tool)       # registered as "Echo"
        >>> registry.get("ECHO") is echo_tool
        True
        >>> registry.get_original_name("echo")
        'Echo'
    """

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        self._original_names: Dict[str, str] = {}
        self._lock = threading.RLock()
        for tool in tools or ():
            self.register(tool)

    # ── Registration ──────────────────────────────────────────────────────

    def register(self, tool: Tool) -> None:
        key = tool.name.lower()
        with self._lock:
            if key in self._tools:
                logger.debug(f"Replacing registered tool: {tool.name}")
            self._tools[key] = tool
            self._original_names[key] = tool.name

    def unregister(self, name: str) -> bool:
        key = name.lower()
        with self._lock:
            self._original_names.pop(key, None)
            return self._tools.pop(key, None) is not None

    def unregister_prefix(self, prefix: str) -> int:
        """Drop every tool whose name starts with ``prefix``; returns the count."""
        lowered = prefix.lower()
        with self._lock:
            doomed = [key for key in self._tools if key.startswith(lowered)]
            for key in doomed:
                del self._tools[key]
                del self._original_names[key]
        return len(doomed)

    # ── Lookup ────────────────────────────────────────────────────────────

    def get(self, name: str) -> Optional[Tool]:
        with self._lock:
            return self._tools.get(name.lower())

    def has(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._tools

    def list(self) -> List[Tool]:
        with self._lock:
            return list(self._tools.values())

    def list_by_kind(self, kind: Union[ToolKind, str]) -> List[Tool]:
        kind = ToolKind(kind)
        return [tool for tool in self.list() if tool.kind == kind]

    def get_original_name(self, name: str) -> str:
        with self._lock:
            return self._original_names.get(name.lower(), name)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    # ── LLM definitions ───────────────────────────────────────────────────

    def get_definitions(
        self,
        kinds: Optional[Iterable[Union[ToolKind, str]]] = None,
        enabled_only: bool = True,
    ) -> List[Dict[str, Any]]:
        """
        Export tools in the shape LLM tool-calling APIs expect.

        Args:
            kinds: Only include tools of these kinds.
            enabled_only: Skip tools whose ``enabled`` flag is false.

        Returns:
            A list of ``{name, description, parameters, kind}`` dicts where
            ``parameters`` is a JSON Schema.
        """
        wanted = {ToolKind(k) for k in kinds} if kinds is not None else None
        definitions = []
        for tool in self.list():
            if enabled_only and not tool.enabled:
                continue
            if wanted is not None and tool.kind not in wanted:
                continue
            definitions.append({
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters.json_schema(),
                "kind": tool.kind.value,
            })
        return definitions
