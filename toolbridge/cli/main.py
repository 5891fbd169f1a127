"""
Toolbridge CLI - inspect and run local and MCP-bridged tools.

Run `toolbridge tools` to see what is available and
`toolbridge run NAME '{"arg": "value"}'` to execute a tool.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import yaml
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from toolbridge import __version__
from toolbridge.errors import ToolBridgeError
from toolbridge.mcp.bridge import MCPBridge
from toolbridge.tools.builtin import register_builtin_tools
from toolbridge.tools.executor import ToolExecutor
from toolbridge.tools.permissions import RulePermissionChecker
from toolbridge.tools.registry import ToolRegistry
from toolbridge.tools.types import ToolContext, ToolKind
from toolbridge.validation.config import Config, ToolbridgeConfig

console = Console()


def setup_logging(level: str, verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _settings(ctx: click.Context) -> ToolbridgeConfig:
    return ctx.obj["config"].merged


def _build_executor(settings: ToolbridgeConfig, auto_approve: bool = False):
    """Registry with builtin tools, wired to a rule-based permission checker."""
    registry = ToolRegistry()
    register_builtin_tools(registry)
    checker = RulePermissionChecker(
        settings.permissions,
        registry=registry,
        auto_approve=auto_approve or None,
    )
    executor = ToolExecutor(
        registry=registry,
        permission_checker=checker,
        default_timeout=settings.executor.default_timeout,
        shell_timeout=settings.executor.shell_timeout,
        enable_logging=settings.executor.enable_logging,
    )
    return executor, checker


def _print_failures(bridge: MCPBridge) -> None:
    for server, error in bridge.failures.items():
        console.print(f"[yellow]MCP server '{server}' unavailable: {error}[/yellow]")


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="ARGS_JSON")
    if not isinstance(arguments, dict):
        raise click.BadParameter("must be a JSON object", param_hint="ARGS_JSON")
    return arguments


def _render_output(output: Any) -> None:
    if output is None:
        return
    if isinstance(output, str):
        console.print(output, markup=False, highlight=False)
    else:
        console.print_json(json.dumps(output, default=str))


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Local config file (default: nearest .toolbridge/config.yaml)",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, version: bool, config_path: Optional[Path], verbose: bool) -> None:
    """
    Toolbridge - run local and MCP-bridged tools.

    \b
    Examples:
        toolbridge tools                          # List tools
        toolbridge run read_file '{"path": "README.md"}'
        toolbridge mcp list                       # Show MCP servers
        toolbridge config show                    # Show merged config
    """
    if version:
        console.print(f"toolbridge v{__version__}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    try:
        config = Config.load(config_path)
        settings = config.merged
    except ToolBridgeError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    setup_logging(settings.logging.level, verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# ── tools ─────────────────────────────────────────────────────────────────


@cli.command("tools")
@click.option(
    "--kind", "-k", type=click.Choice([k.value for k in ToolKind]), default=None, help="Only show tools of this kind"
)
@click.option("--mcp/--no-mcp", "with_mcp", default=True, help="Include MCP-bridged tools")
@click.pass_context
def tools_cmd(ctx: click.Context, kind: Optional[str], with_mcp: bool) -> None:
    """List registered tools."""
    settings = _settings(ctx)
    asyncio.run(_list_tools(settings, kind, with_mcp))


async def _list_tools(settings: ToolbridgeConfig, kind: Optional[str], with_mcp: bool) -> None:
    executor, _ = _build_executor(settings)
    bridge = MCPBridge(executor.registry, settings.mcp)
    if with_mcp:
        with console.status("[bold blue]Connecting to MCP servers...[/bold blue]"):
            await bridge.start(skip_failed=True)
        _print_failures(bridge)

    try:
        tools = executor.registry.list_by_kind(kind) if kind else executor.list_tools()
        if not tools:
            console.print("[dim]No tools available[/dim]")
            return

        table = Table(title=f"Available Tools ({len(tools)})", show_header=True, header_style="bold")
        table.add_column("Name", style="cyan")
        table.add_column("Kind", style="magenta", width=8)
        table.add_column("Description", style="white")
        for tool in sorted(tools, key=lambda t: t.name.lower()):
            description = tool.description.split("\n")[0][:80]
            name = tool.name if tool.enabled else f"{tool.name} [dim](disabled)[/dim]"
            table.add_row(name, tool.kind.value, description)
        console.print(table)
    finally:
        await bridge.stop()


# ── run ───────────────────────────────────────────────────────────────────


@cli.command("run")
@click.argument("name")
@click.argument("args_json", required=False)
@click.option("--timeout", "-t", type=float, default=None, help="Timeout in seconds")
@click.option("--yes", "-y", is_flag=True, help="Approve tools that would ask for confirmation")
@click.option("--mcp/--no-mcp", "with_mcp", default=True, help="Connect to MCP servers first")
@click.pass_context
def run_cmd(
    ctx: click.Context,
    name: str,
    args_json: Optional[str],
    timeout: Optional[float],
    yes: bool,
    with_mcp: bool,
) -> None:
    """Execute tool NAME with ARGS_JSON (a JSON object)."""
    arguments = _parse_arguments(args_json)
    settings = _settings(ctx)
    succeeded = asyncio.run(_run_tool(settings, name, arguments, timeout, yes, with_mcp))
    if not succeeded:
        sys.exit(1)


async def _run_tool(
    settings: ToolbridgeConfig,
    name: str,
    arguments: Dict[str, Any],
    timeout: Optional[float],
    yes: bool,
    with_mcp: bool,
) -> bool:
    executor, checker = _build_executor(settings, auto_approve=yes)
    bridge = MCPBridge(executor.registry, settings.mcp)
    if with_mcp:
        await bridge.start(skip_failed=True)
        _print_failures(bridge)

    try:
        context = ToolContext.create(str(Path.cwd()))
        outcome = await executor.execute_with_permission_check(name, arguments, context, timeout=timeout)

        if outcome.status == "permission_required":
            display_name = executor.get_original_name(name)
            # Confirm.ask blocks on stdin; keep it off the event loop.
            confirmed = await asyncio.to_thread(
                Confirm.ask, f"[bold]Allow [cyan]{display_name}[/cyan] to run?[/bold]", default=False
            )
            if not confirmed:
                console.print(f"[yellow]Cancelled: {display_name} was not approved[/yellow]")
                return False
            checker.grant(display_name)
            outcome = await executor.execute_with_permission_check(name, arguments, context, timeout=timeout)

        if outcome.status == "not_found":
            console.print(f"[red]Error: Tool not found: {name}[/red]")
            return False
        if outcome.status == "denied":
            console.print(f"[red]Error: {outcome.error}[/red]")
            return False
        if outcome.result is None:
            console.print(f"[red]Error: {name} did not run ({outcome.status})[/red]")
            return False

        execution = outcome.result
        if execution.result.success:
            _render_output(execution.result.output)
            console.print(f"[dim]{execution.tool_name} finished in {execution.timing.duration_ms}ms[/dim]")
            return True

        console.print(f"[red]Error: {execution.result.error}[/red]")
        return False
    finally:
        await bridge.stop()


# ── mcp ───────────────────────────────────────────────────────────────────


@cli.group("mcp")
def mcp_group() -> None:
    """MCP server commands."""


@mcp_group.command("list")
@click.pass_context
def mcp_list(ctx: click.Context) -> None:
    """List configured MCP servers and the tools they provide."""
    settings = _settings(ctx)
    if not settings.mcp.servers:
        console.print("[dim]No MCP servers configured. Add them to .toolbridge/config.yaml:[/dim]")
        console.print("[dim]  mcp:[/dim]")
        console.print("[dim]    servers:[/dim]")
        console.print("[dim]      filesystem:[/dim]")
        console.print('[dim]        command: "npx"[/dim]')
        console.print('[dim]        args: ["-y", "@modelcontextprotocol/server-filesystem", "."][/dim]')
        return
    if not settings.mcp.enabled:
        console.print("[yellow]MCP bridging is disabled. Set mcp.enabled: true in config.yaml[/yellow]")
    asyncio.run(_list_servers(settings))


async def _list_servers(settings: ToolbridgeConfig) -> None:
    bridge = MCPBridge(ToolRegistry(), settings.mcp)
    with console.status("[bold blue]Connecting to MCP servers...[/bold blue]"):
        await bridge.start(skip_failed=True)

    try:
        for name, server in settings.mcp.servers.items():
            command = " ".join([server.command] + server.args)
            if not server.enabled or not settings.mcp.enabled:
                console.print(f"[bold]{name}[/bold] [dim]{command} (disabled)[/dim]")
                continue
            if name in bridge.failures:
                console.print(f"[bold]{name}[/bold] [dim]{command}[/dim]")
                console.print(f"  [red]Failed: {bridge.failures[name]}[/red]")
                continue

            tools = bridge.tools_for(name)
            console.print(f"[bold]{name}[/bold] [dim]{command}[/dim] [green]{len(tools)} tools[/green]")
            for tool_name in tools:
                tool = bridge.registry.get(tool_name)
                description = tool.description.split("\n")[0][:80] if tool else ""
                console.print(f"  [cyan]{tool_name}[/cyan] - {description}")
    finally:
        await bridge.stop()


# ── config ────────────────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Configuration commands."""


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the merged configuration as YAML."""
    settings = _settings(ctx)
    console.print(
        yaml.dump(settings.model_dump(mode="json"), default_flow_style=False, sort_keys=False),
        markup=False,
        highlight=False,
    )


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
