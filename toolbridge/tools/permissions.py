"""
Permission mediation for tool calls.

A permission checker is any async callable
``(tool_name, params, context) -> PermissionDecision``. The executor only
consumes the three-way decision; how it is reached (allow-lists, prompts,
learned policy) is up to the checker.
"""

from __future__ import annotations

import logging
from enum import Enum
from fnmatch import fnmatch
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field

from toolbridge.tools.registry import ToolRegistry
from toolbridge.tools.types import ToolContext

logger = logging.getLogger(__name__)


class PermissionDecision(str, Enum):
    ALLOW = "allow"
    ASK = "ask"
    DENY = "deny"


PermissionChecker = Callable[
    [str, Any, ToolContext],
    Awaitable[Union[PermissionDecision, str]],
]


class PermissionRule(BaseModel):
    """
    A single permission rule.

    ``match`` supports:
    - ``tool:<name_or_pattern>`` -> matches the tool name only
    - otherwise: fnmatch against both the tool kind and the tool name
    """

    match: str
    decision: PermissionDecision

    def matches(self, kind: str, tool_name: str) -> bool:
        if self.match.startswith("tool:"):
            return fnmatch(tool_name, self.match[len("tool:"):])
        return fnmatch(kind, self.match) or fnmatch(tool_name, self.match)


def _default_decisions() -> Dict[str, PermissionDecision]:
    return {
        "read": PermissionDecision.ALLOW,
        "write": PermissionDecision.ASK,
        "shell": PermissionDecision.ASK,
        "mcp": PermissionDecision.ASK,
        "browser": PermissionDecision.ASK,
        "agent": PermissionDecision.ASK,
    }


class PermissionConfig(BaseModel):
    """Per-kind defaults plus ordered rules; later rules win."""

    defaults: Dict[str, PermissionDecision] = Field(default_factory=_default_decisions)
    rules: List[PermissionRule] = Field(default_factory=list)
    auto_approve: bool = False

    def decide(self, kind: str, tool_name: str) -> PermissionDecision:
        decision: Optional[PermissionDecision] = None
        for rule in self.rules:
            if rule.matches(kind, tool_name):
                decision = rule.decision
        if decision is not None:
            return decision
        return self.defaults.get(kind, self.defaults.get(tool_name, PermissionDecision.ASK))


class RulePermissionChecker:
    """
    Rule-based checker with session grants.

    ``grant(name)`` records a user's confirmation so later calls to the same
    tool are allowed without asking again. Explicit ``deny`` always wins.
    """

    def __init__(
        self,
        config: Optional[PermissionConfig] = None,
        registry: Optional[ToolRegistry] = None,
        auto_approve: Optional[bool] = None,
    ):
        self.config = config or PermissionConfig()
        self.registry = registry
        self.auto_approve = self.config.auto_approve if auto_approve is None else auto_approve
        self._granted: Set[str] = set()

    def grant(self, tool_name: str) -> None:
        self._granted.add(tool_name.lower())

    def revoke(self, tool_name: str) -> None:
        self._granted.discard(tool_name.lower())

    def is_granted(self, tool_name: str) -> bool:
        return tool_name.lower() in self._granted

    def _kind_of(self, tool_name: str) -> str:
        if self.registry is not None:
            tool = self.registry.get(tool_name)
            if tool is not None:
                return tool.kind.value
        return ""

    def decide(self, tool_name: str) -> PermissionDecision:
        name = self.registry.get_original_name(tool_name) if self.registry is not None else tool_name
        decision = self.config.decide(self._kind_of(name), name)
        if decision == PermissionDecision.DENY:
            return decision
        if decision == PermissionDecision.ASK and (self.auto_approve or self.is_granted(name)):
            return PermissionDecision.ALLOW
        return decision

    async def __call__(
        self, tool_name: str, params: Any, context: ToolContext
    ) -> PermissionDecision:
        decision = self.decide(tool_name)
        logger.debug(f"Permission for {tool_name}: {decision.value}")
        return decision


def allow_all() -> PermissionChecker:
    async def _allow(tool_name: str, params: Any, context: ToolContext) -> PermissionDecision:
        return PermissionDecision.ALLOW

    return _allow
