#!/usr/bin/env python3
"""
CLI for the plan compiler.

Usage:
    plan-compiler validate plan.json --org-id org_123
    plan-compiler compile plan.json --org-id org_123 --output workflow.json
    plan-compiler config
"""
import asyncio
import json
import logging
import sys
import traceback
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich import box

# Load .env before importing compiler modules
load_dotenv()

from plan_compiler import (  # noqa: E402
    CompilerContext,
    CompilerError,
    PlanValidationError,
    compile_plan_document,
    validate_plan_document,
)
from plan_compiler.registry.action_registry import InMemoryActionRegistry  # noqa: E402
from plan_compiler.schema.models import ValidationIssue  # noqa: E402
from plan_compiler.summary import categorize_issues, get_validation_summary  # noqa: E402
from shared.config import config as compiler_config  # noqa: E402
from shared.logger import set_level  # noqa: E402

console = Console()

# Global verbose flag
VERBOSE = False

_SEVERITY_STYLES = {"critical": "red", "warning": "yellow", "info": "cyan"}


@click.group()
@click.version_option(version="0.1.0", prog_name="plan-compiler")
@click.option('--verbose', '-v', is_flag=True, help='Show compiler logs and full error tracebacks')
def cli(verbose: bool):
    """
    Plan Compiler - validate automation plans and compile them to n8n workflows.

    \b
    Commands:
      validate       - Check a plan for structural and business-rule problems
      compile        - Compile a plan into an n8n workflow graph
      config         - Show current configuration

    \b
    Examples:
      plan-compiler validate plan.json --org-id org_123
      plan-compiler compile plan.json --org-id org_123 --actions actions.json
      plan-compiler -v compile plan.json --org-id org_123
    """
    global VERBOSE
    VERBOSE = verbose
    # Logs share stdout with command output; keep them quiet unless asked.
    set_level(logging.DEBUG if verbose else logging.WARNING)


def _build_context(org_id: str, actions: Optional[str]) -> CompilerContext:
    if not actions:
        return CompilerContext(org_id=org_id)
    try:
        data = json.loads(Path(actions).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{actions} is not valid JSON: {e}", param_hint="--actions")
    if not isinstance(data, dict):
        raise click.BadParameter("expected an object keyed by action slug", param_hint="--actions")
    try:
        registry = InMemoryActionRegistry.from_mapping(data)
    except KeyError as e:
        raise click.BadParameter(f"action definition is missing {e}", param_hint="--actions")
    except (TypeError, AttributeError, ValueError) as e:
        raise click.BadParameter(f"invalid action definition: {e}", param_hint="--actions")
    return CompilerContext(org_id=org_id, action_registry=registry)


def _print_issues(issues: list[ValidationIssue]) -> None:
    table = Table(title="Issues", box=box.ROUNDED)
    table.add_column("Severity", justify="center")
    table.add_column("Code", style="bold")
    table.add_column("Path", style="dim")
    table.add_column("Message")

    for severity, grouped in categorize_issues(issues).items():
        style = _SEVERITY_STYLES[severity]
        for issue in grouped:
            table.add_row(f"[{style}]{severity}[/{style}]", issue.code, escape(issue.path), escape(issue.message))

    console.print(table)


def _fail(message: str, error: Optional[BaseException] = None) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    if VERBOSE and error is not None:
        console.print(traceback.format_exc(), markup=False)
    sys.exit(1)


@cli.command(name="validate")
@click.argument('plan_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--org-id', required=True, help='Organization the plan belongs to')
@click.option('--actions', type=click.Path(exists=True, dir_okay=False), help='JSON file of custom action definitions')
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'table']), default='table', help='Output format')
def validate_plan_command(plan_file: str, org_id: str, actions: Optional[str], fmt: str):
    """
    Validate a plan without compiling it.

    Runs the structural schema check and, when that passes, the business
    rules (trigger placement, allowed hosts, known custom actions, ...).

    \b
    Example:
      plan-compiler validate plan.json --org-id org_123
      plan-compiler validate plan.json --org-id org_123 --format json
    """
    context = _build_context(org_id, actions)
    payload = Path(plan_file).read_text(encoding="utf-8")

    try:
        result = asyncio.run(validate_plan_document(payload, context))
    except Exception as e:
        _fail(f"Validation failed unexpectedly: {e}", e)
        return

    if fmt == 'json':
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
    elif result.valid:
        console.print(f"[green]✓[/green] {get_validation_summary(result)}")
    else:
        _print_issues(result.issues)
        console.print(f"[yellow]{get_validation_summary(result)}[/yellow]")

    if not result.valid:
        sys.exit(1)


@cli.command(name="compile")
@click.argument('plan_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--org-id', required=True, help='Organization the plan belongs to')
@click.option('--actions', type=click.Path(exists=True, dir_okay=False), help='JSON file of custom action definitions')
@click.option('--output', '-o', type=click.Path(dir_okay=False, writable=True), help='Write the workflow JSON to this file')
def compile_plan_command(plan_file: str, org_id: str, actions: Optional[str], output: Optional[str]):
    """
    Compile a plan into an n8n workflow.

    The plan is validated first; an invalid plan is reported and nothing is
    written.

    \b
    Example:
      plan-compiler compile plan.json --org-id org_123
      plan-compiler compile plan.json --org-id org_123 --output workflow.json
    """
    context = _build_context(org_id, actions)
    payload = Path(plan_file).read_text(encoding="utf-8")

    try:
        result = asyncio.run(compile_plan_document(payload, context))
    except PlanValidationError as e:
        _print_issues(e.issues)
        _fail(f"Plan is invalid ({len(e.issues)} issue(s))", e)
        return
    except CompilerError as e:
        _fail(f"[{e.code}] {e.message}", e)
        return

    rendered = json.dumps(result.to_wire(), indent=2)
    if not output:
        click.echo(rendered)
        return

    Path(output).write_text(rendered + "\n", encoding="utf-8")
    workflow = result.workflow
    console.print(Panel.fit(
        f"[bold green]✓ Compiled {result.name}[/bold green]\n\n"
        f"[dim]Nodes: {len(workflow.nodes)}[/dim]\n"
        f"[dim]Connections: {len(workflow.connections)}[/dim]\n"
        f"[dim]Written to: {output}[/dim]",
        border_style="green"
    ))


@cli.command()
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'table']), default='table', help='Output format')
def config(fmt: str):
    """
    Show current configuration.

    Displays configuration values loaded from environment variables and .env file.
    """
    sections = {
        "Validation Policy": [
            ("allowed_hosts", "ALLOWED_HOSTS"),
            ("max_branch_depth", "MAX_BRANCH_DEPTH"),
        ],
        "Node Synthesis": [
            ("max_node_name_length", "MAX_NODE_NAME_LENGTH"),
            ("webhook_signature_header", "WEBHOOK_SIGNATURE_HEADER"),
            ("webhook_secret_variable", "WEBHOOK_SECRET_VARIABLE"),
            ("filter_false_output_terminates", "FILTER_FALSE_OUTPUT_TERMINATES"),
        ],
        "Layout": [
            ("layout_node_width", "LAYOUT_NODE_WIDTH"),
            ("layout_node_height", "LAYOUT_NODE_HEIGHT"),
            ("layout_horizontal_spacing", "LAYOUT_HORIZONTAL_SPACING"),
            ("layout_vertical_spacing", "LAYOUT_VERTICAL_SPACING"),
            ("layout_start_x", "LAYOUT_START_X"),
            ("layout_start_y", "LAYOUT_START_Y"),
        ],
        "Logging": [
            ("log_level", "LOG_LEVEL"),
        ],
    }

    if fmt == 'json':
        output = {
            section: {attr: getattr(compiler_config, attr) for attr, _ in items}
            for section, items in sections.items()
        }
        click.echo(json.dumps(output, indent=2, default=str))
        return

    console.print(Panel.fit(
        "[bold cyan]Plan Compiler Configuration[/bold cyan]",
        border_style="cyan"
    ))
    for section, items in sections.items():
        table = Table(title=section, box=box.ROUNDED)
        table.add_column("Setting", style="cyan")
        table.add_column("Env Variable", style="dim")
        table.add_column("Value")

        for attr, env_var in items:
            value = getattr(compiler_config, attr)
            if isinstance(value, list):
                value = ", ".join(value)
            table.add_row(attr, env_var, str(value))

        console.print(table)
        console.print()


if __name__ == "__main__":
    cli()
