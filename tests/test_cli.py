"""Tests for the command line interface."""

import pytest
import yaml
from click.testing import CliRunner

from toolbridge import __version__
from toolbridge.cli import main
from toolbridge.validation.config import Config


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.setattr(Config, "GLOBAL_CONFIG_DIR", tmp_path / "global")
    monkeypatch.setattr(main, "setup_logging", lambda level, verbose=False: None)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "notes.txt").write_text("hello from notes\n")
    return tmp_path


def invoke(workspace, *args, settings=None, input=None):
    config_file = workspace / "config.yaml"
    config_file.write_text(yaml.dump(settings or {}))
    return CliRunner().invoke(main.cli, ["--config", str(config_file), *args], input=input)


class TestGroup:
    def test_version(self):
        result = CliRunner().invoke(main.cli, ["--version"])

        assert result.exit_code == 0
        assert f"toolbridge v{__version__}" in result.output

    def test_help_without_command(self):
        result = CliRunner().invoke(main.cli, [])

        assert result.exit_code == 0
        assert "Usage" in result.output

    def test_invalid_config(self, workspace):
        result = invoke(workspace, "tools", "--no-mcp", settings={"executor": {"default_timeout": "soon"}})

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestToolsCommand:
    def test_lists_builtin_tools(self, workspace):
        result = invoke(workspace, "tools", "--no-mcp")

        assert result.exit_code == 0
        for name in ("read_file", "write_file", "list_dir", "bash"):
            assert name in result.output

    def test_filter_by_kind(self, workspace):
        result = invoke(workspace, "tools", "--kind", "shell", "--no-mcp")

        assert result.exit_code == 0
        assert "bash" in result.output
        assert "read_file" not in result.output

    def test_unknown_kind(self, workspace):
        result = invoke(workspace, "tools", "--kind", "magic", "--no-mcp")

        assert result.exit_code == 2


class TestRunCommand:
    def test_allowed_tool(self, workspace):
        result = invoke(workspace, "run", "read_file", '{"path": "notes.txt"}', "--no-mcp")

        assert result.exit_code == 0
        assert "hello from notes" in result.output

    def test_case_insensitive_name(self, workspace):
        result = invoke(workspace, "run", "READ_FILE", '{"path": "notes.txt"}', "--no-mcp")

        assert result.exit_code == 0
        assert "read_file finished" in result.output

    def test_unknown_tool(self, workspace):
        result = invoke(workspace, "run", "nope", "--no-mcp")

        assert result.exit_code == 1
        assert "Tool not found: nope" in result.output

    def test_invalid_json(self, workspace):
        result = invoke(workspace, "run", "read_file", "{not json", "--no-mcp")

        assert result.exit_code == 2

    def test_validation_failure(self, workspace):
        result = invoke(workspace, "run", "read_file", '{"path": 3}', "--no-mcp")

        assert result.exit_code == 1
        assert "Validation failed" in result.output

    def test_yes_skips_confirmation(self, workspace):
        args = '{"path": "out.txt", "content": "written"}'

        result = invoke(workspace, "run", "write_file", args, "--yes", "--no-mcp")

        assert result.exit_code == 0
        assert (workspace / "out.txt").read_text() == "written"

    def test_confirmation_accepted(self, workspace):
        args = '{"path": "out.txt", "content": "written"}'

        result = invoke(workspace, "run", "write_file", args, "--no-mcp", input="y\n")

        assert result.exit_code == 0
        assert "Allow" in result.output
        assert (workspace / "out.txt").exists()

    def test_confirmation_declined(self, workspace):
        args = '{"path": "out.txt", "content": "written"}'

        result = invoke(workspace, "run", "write_file", args, "--no-mcp", input="n\n")

        assert result.exit_code == 1
        assert "was not approved" in result.output
        assert not (workspace / "out.txt").exists()

    def test_denied_by_rule(self, workspace):
        settings = {"permissions": {"rules": [{"match": "tool:bash", "decision": "deny"}]}}

        result = invoke(workspace, "run", "bash", '{"command": "echo hi"}', "--yes", "--no-mcp", settings=settings)

        assert result.exit_code == 1
        assert "Permission denied for tool: bash" in result.output

    def test_failed_command(self, workspace):
        result = invoke(workspace, "run", "bash", '{"command": "exit 4"}', "--yes", "--no-mcp")

        assert result.exit_code == 1
        assert "EXIT_CODE: 4" in result.output


class TestMCPCommand:
    def test_no_servers(self, workspace):
        result = invoke(workspace, "mcp", "list")

        assert result.exit_code == 0
        assert "No MCP servers configured" in result.output

    def test_unreachable_server(self, workspace):
        settings = {"mcp": {"servers": {"ghost": {"command": "toolbridge-no-such-server-binary"}}}}

        result = invoke(workspace, "mcp", "list", settings=settings)

        assert result.exit_code == 0
        assert "ghost" in result.output
        assert "Failed" in result.output

    def test_disabled_server(self, workspace):
        settings = {"mcp": {"servers": {"off": {"command": "x", "enabled": False}}}}

        result = invoke(workspace, "mcp", "list", settings=settings)

        assert "(disabled)" in result.output


class TestConfigCommand:
    def test_show(self, workspace):
        result = invoke(workspace, "config", "show", settings={"executor": {"shell_timeout": 300}})

        assert result.exit_code == 0
        shown = yaml.safe_load(result.output)
        assert shown["executor"]["shell_timeout"] == 300.0
        assert shown["mcp"]["tool_prefix"] == "mcp_"
