"""
idprov command line.

Usage:
    idprov converge [--attributes FILE] [--inventory FILE] [--state FILE]
                    [--node NAME] [--platform FAMILY] [--dry-run]
    idprov providers
"""

from __future__ import annotations

import argparse
import json
import os
import uuid
from typing import Optional, Sequence

import structlog
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from idprov import __version__
from idprov.cluster.inventory import Inventory
from idprov.cluster.state import ClusterState
from idprov.config.loader import load_attributes
from idprov.config.settings import Settings, get_settings
from idprov.core.errors import ExitCode, main_with_error_handling
from idprov.engine import ConvergenceEngine, ResourceStatus, RunReport
from idprov.logging import bind_context, configure_logging
from idprov.providers import ProviderContext, list_providers, provider_registry
from idprov.recipes import keystone_server

logger = structlog.get_logger()

IDPROV_THEME = Theme(
    {
        "info": "#88C0D0",
        "success": "#A3BE8C",
        "warning": "#EBCB8B",
        "error": "#BF616A bold",
        "muted": "#D8DEE9",
    }
)

console = Console(
    theme=IDPROV_THEME,
    force_terminal=os.environ.get("FORCE_COLOR") is not None,
    no_color=os.environ.get("NO_COLOR") is not None,
)

STATUS_STYLES = {
    ResourceStatus.UP_TO_DATE: "muted",
    ResourceStatus.UPDATED: "success",
    ResourceStatus.EXECUTED: "info",
    ResourceStatus.SKIPPED: "muted",
    ResourceStatus.WOULD_UPDATE: "warning",
}


# === Output ===


def header(title: str) -> None:
    console.print()
    console.print(Panel(f"[bold]{title}[/bold]", border_style="cyan"))


def print_report(report: RunReport, *, node: str) -> None:
    """Print a convergence run summary."""
    header(f"{'Dry run' if report.dry_run else 'Converged'}: {node}")

    table = Table(show_header=True)
    table.add_column("Resource")
    table.add_column("Action")
    table.add_column("Status")
    table.add_column("Changes", justify="right")
    table.add_column("Time", justify="right")
    for outcome in report.outcomes:
        style = STATUS_STYLES[outcome.status]
        resource = escape(str(outcome.key))
        if outcome.triggered_by:
            resource = f"{resource} [muted](via {escape(outcome.triggered_by)})[/muted]"
        table.add_row(
            resource,
            outcome.action,
            f"[{style}]{outcome.status}[/{style}]",
            str(len(outcome.changes)),
            f"{outcome.duration_seconds:.2f}s",
        )
        for note in outcome.notified:
            table.add_row(f"  [muted]└ {escape(note)}[/muted]", "", "", "", "")
    console.print(table)

    verb = "would update" if report.dry_run else "updated"
    console.print(
        f"[success]✓[/success] {len(report.outcomes)} resources, "
        f"{report.updated_count} {verb}, {report.executed_count} executed "
        f"in {report.duration_seconds:.1f}s"
    )


# === Commands ===


@main_with_error_handling()
def converge_command(
    settings: Settings,
    *,
    node_name: str,
    platform: str,
    attributes_file: str,
    inventory_file: str,
    state_file: str,
    dry_run: bool = False,
    output_format: str = "text",
) -> int:
    """Converge this node into an identity server."""
    bind_context(node=node_name, run_id=uuid.uuid4().hex[:12])

    attributes = load_attributes(attributes_file)
    inventory = Inventory.load(inventory_file)
    node = inventory.get(node_name)
    state = ClusterState.load(state_file)

    collection = keystone_server(
        attributes, node=node, inventory=inventory, state=state, platform=platform, dry_run=dry_run
    )
    context = ProviderContext.from_settings(settings, state=state)
    engine = ConvergenceEngine(provider_registry, context, platform=platform, dry_run=dry_run)
    report = engine.converge(collection)

    if output_format == "json":
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report, node=node_name)
    return ExitCode.SUCCESS


@main_with_error_handling()
def providers_command(output_format: str = "text") -> int:
    """List registered provider variants."""
    specs = list_providers()
    if output_format == "json":
        rows = [
            {"name": s.name, "type": s.resource_type, "variant": s.variant, "description": s.description}
            for s in specs
        ]
        print(json.dumps(rows, indent=2))
        return ExitCode.SUCCESS

    table = Table(title="Providers", show_header=True)
    table.add_column("Resource type")
    table.add_column("Variant")
    table.add_column("Description")
    for spec in specs:
        table.add_row(spec.resource_type, spec.variant or "[muted]any[/muted]", spec.description or "")
    console.print(table)
    return ExitCode.SUCCESS


# === Entry point ===


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="idprov", description="Identity service provisioning")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Log level (default: IDPROV_LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest="command")

    converge_parser = subparsers.add_parser("converge", help="Converge this node into an identity server")
    converge_parser.add_argument("--attributes", help="Node attributes YAML (keystone: tree)")
    converge_parser.add_argument("--inventory", help="Cluster inventory YAML")
    converge_parser.add_argument("--state", help="Cluster state YAML, created if missing")
    converge_parser.add_argument("--node", help="Name of this node in the inventory")
    converge_parser.add_argument(
        "--platform", choices=["debian", "suse", "rhel"], help="Platform family of this node"
    )
    converge_parser.add_argument(
        "--dry-run", action="store_true", help="Report what would change without changing anything"
    )
    converge_parser.add_argument("--output", choices=["text", "json"], default="text", help="Output format")

    providers_parser = subparsers.add_parser("providers", help="List registered provider variants")
    providers_parser.add_argument("--output", choices=["text", "json"], default="text", help="Output format")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, json=settings.log_json)

    if args.command == "converge":
        return converge_command(
            settings,
            node_name=args.node or settings.node_name,
            platform=args.platform or settings.platform,
            attributes_file=args.attributes or settings.attributes_file,
            inventory_file=args.inventory or settings.inventory_file,
            state_file=args.state or settings.state_file,
            dry_run=args.dry_run or settings.dry_run,
            output_format=args.output,
        )

    if args.command == "providers":
        return providers_command(args.output)

    parser.print_help()
    return ExitCode.CONFIG_ERROR
