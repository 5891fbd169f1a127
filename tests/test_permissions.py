"""Tests for rule-based permission mediation."""

import pytest
from pydantic import BaseModel

from toolbridge.tools.permissions import (
    PermissionConfig,
    PermissionDecision,
    PermissionRule,
    RulePermissionChecker,
    allow_all,
)
from toolbridge.tools.registry import ToolRegistry
from toolbridge.tools.types import ToolContext, ToolKind, define_tool, ok


class NoParams(BaseModel):
    pass


def registry_with(*tools):
    registry = ToolRegistry()
    for name, kind in tools:
        registry.register(define_tool(name, name, NoParams, lambda p, c: ok(), kind=kind))
    return registry


class TestPermissionRule:
    def test_tool_prefix_matches_name_only(self):
        rule = PermissionRule(match="tool:bash", decision="deny")

        assert rule.matches("shell", "bash")
        assert not rule.matches("bash", "other")

    def test_glob_matches_kind_or_name(self):
        rule = PermissionRule(match="mcp*", decision="allow")

        assert rule.matches("mcp", "anything")
        assert rule.matches("read", "mcp_search")
        assert not rule.matches("read", "read_file")


class TestPermissionConfig:
    def test_defaults_per_kind(self):
        config = PermissionConfig()

        assert config.decide("read", "read_file") == PermissionDecision.ALLOW
        assert config.decide("write", "write_file") == PermissionDecision.ASK
        assert config.decide("shell", "bash") == PermissionDecision.ASK
        assert config.decide("mcp", "mcp_search") == PermissionDecision.ASK

    def test_unknown_kind_asks(self):
        assert PermissionConfig().decide("", "mystery") == PermissionDecision.ASK

    def test_later_rules_win(self):
        config = PermissionConfig(rules=[
            {"match": "mcp", "decision": "deny"},
            {"match": "tool:mcp_search", "decision": "allow"},
        ])

        assert config.decide("mcp", "mcp_search") == PermissionDecision.ALLOW
        assert config.decide("mcp", "mcp_delete") == PermissionDecision.DENY


class TestRulePermissionChecker:
    def test_looks_up_kind_through_registry(self):
        registry = registry_with(("bash", ToolKind.SHELL), ("read_file", ToolKind.READ))
        checker = RulePermissionChecker(registry=registry)

        assert checker.decide("bash") == PermissionDecision.ASK
        assert checker.decide("READ_FILE") == PermissionDecision.ALLOW

    def test_empty_registry_is_still_used(self):
        registry = ToolRegistry()
        checker = RulePermissionChecker(registry=registry)
        registry.register(define_tool("ls", "ls", NoParams, lambda p, c: ok(), kind=ToolKind.READ))

        assert checker.decide("ls") == PermissionDecision.ALLOW

    def test_grant_and_revoke(self):
        checker = RulePermissionChecker(registry=registry_with(("bash", ToolKind.SHELL)))

        checker.grant("Bash")
        assert checker.is_granted("bash")
        assert checker.decide("bash") == PermissionDecision.ALLOW

        checker.revoke("BASH")
        assert checker.decide("bash") == PermissionDecision.ASK

    def test_deny_wins_over_grant(self):
        config = PermissionConfig(rules=[PermissionRule(match="tool:bash", decision="deny")])
        checker = RulePermissionChecker(config, registry=registry_with(("bash", ToolKind.SHELL)))

        checker.grant("bash")

        assert checker.decide("bash") == PermissionDecision.DENY

    def test_auto_approve(self):
        registry = registry_with(("bash", ToolKind.SHELL))

        assert RulePermissionChecker(registry=registry, auto_approve=True).decide("bash") == PermissionDecision.ALLOW
        config = PermissionConfig(auto_approve=True)
        assert RulePermissionChecker(config, registry=registry).decide("bash") == PermissionDecision.ALLOW

    @pytest.mark.asyncio
    async def test_checker_is_awaitable(self):
        checker = RulePermissionChecker(registry=registry_with(("bash", ToolKind.SHELL)))
        ctx = ToolContext.create("/tmp")

        assert await checker("bash", {"command": "ls"}, ctx) == PermissionDecision.ASK

    @pytest.mark.asyncio
    async def test_allow_all(self):
        checker = allow_all()

        assert await checker("anything", {}, ToolContext.create("/tmp")) == PermissionDecision.ALLOW
