"""Fleet lifecycle CLI commands: status, start, stop, restart, clean, logs."""

import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ...core.components import component_from_name
from ...core.enums import UnitState
from ...core.errors import AlloyKitError
from ...core.log import get_logger
from ...core.types import FleetStatus
from ...utils.output import print_status, print_warning
from ..common import build_context, report_batch, report_clean, report_error

console = Console()
logger = get_logger(__name__)

_INSTANCE_HELP = "Instance name (all instances when omitted)"


def _render_status(status: FleetStatus) -> None:
    scope = f"instance '{status.instance_filter}'" if status.instance_filter else "all instances"
    if not status.units:
        print_warning(f"No AlloyKit units found for {scope}")
        if status.available_instances:
            print_status("Available instances: " + ", ".join(status.available_instances))
        return

    table = Table(title=f"AlloyKit units ({scope})")
    table.add_column("Unit", style="cyan")
    table.add_column("State")
    table.add_column("Status")
    table.add_column("Ports")
    table.add_column("Image", style="dim")
    for unit in status.units:
        style = "green" if unit.state == UnitState.RUNNING else "yellow"
        table.add_row(
            unit.name, f"[{style}]{unit.state.value}[/{style}]", unit.status, unit.ports, unit.image
        )
    console.print(table)

    for instance, counts in sorted(status.instance_summary.items()):
        console.print(
            f"Instance [bold]{instance}[/bold]: "
            f"{counts['running']} running, {counts['stopped']} stopped"
        )
    if status.volumes:
        console.print("Volumes: " + ", ".join(v.name for v in status.volumes))


def status(
    ctx: typer.Context,
    instance: Optional[str] = typer.Argument(None, help=_INSTANCE_HELP),
) -> None:
    """Show units, volumes and a per-instance summary."""
    try:
        result = build_context(ctx).fleet.status(instance)
    except AlloyKitError as e:
        report_error(e)
        raise typer.Exit(1)
    _render_status(result)


def start(
    ctx: typer.Context,
    instance: Optional[str] = typer.Argument(None, help=_INSTANCE_HELP),
) -> None:
    """Start every unit of the instance."""
    try:
        result = build_context(ctx).fleet.start(instance)
    except AlloyKitError as e:
        report_error(e)
        raise typer.Exit(1)
    report_batch(result)


def stop(
    ctx: typer.Context,
    instance: Optional[str] = typer.Argument(None, help=_INSTANCE_HELP),
) -> None:
    """Stop every unit of the instance."""
    try:
        result = build_context(ctx).fleet.stop(instance)
    except AlloyKitError as e:
        report_error(e)
        raise typer.Exit(1)
    report_batch(result)


def restart(
    ctx: typer.Context,
    instance: Optional[str] = typer.Argument(None, help=_INSTANCE_HELP),
) -> None:
    """Stop, settle, then start every unit of the instance."""
    try:
        result = build_context(ctx).fleet.restart(instance)
    except AlloyKitError as e:
        report_error(e)
        raise typer.Exit(1)
    report_batch(result)


def clean(
    ctx: typer.Context,
    instance: Optional[str] = typer.Argument(None, help=_INSTANCE_HELP),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Stop and remove units and data volumes of the instance."""
    scope = f"instance '{instance}'" if instance else "ALL instances"
    if not yes and not typer.confirm(f"Remove all units and data volumes of {scope}?"):
        print_status("Clean cancelled")
        raise typer.Exit(0)
    try:
        result = build_context(ctx).fleet.clean(instance)
    except AlloyKitError as e:
        report_error(e)
        raise typer.Exit(1)
    report_clean(result, f"Clean of {scope}")


def _select_unit(names: List[str]) -> str:
    print_status("Several units match:")
    for index, name in enumerate(names, start=1):
        console.print(f"  {index}) {name}")
    choice = typer.prompt("Select unit", type=typer.IntRange(1, len(names)), default=1)
    return names[choice - 1]


def logs(
    ctx: typer.Context,
    service: str = typer.Argument(help="prometheus, loki, grafana or alloy"),
    instance: Optional[str] = typer.Argument(None, help=_INSTANCE_HELP),
    no_follow: bool = typer.Option(False, "--no-follow", help="Print recent output and exit"),
) -> None:
    """Show a service's output, following it by default."""
    try:
        component = component_from_name(service)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="SERVICE")

    selector = _select_unit if sys.stdin.isatty() else None
    try:
        code = build_context(ctx).fleet.logs(
            component, instance, follow=not no_follow, selector=selector
        )
    except AlloyKitError as e:
        report_error(e)
        raise typer.Exit(1)
    if code != 0:
        raise typer.Exit(code)
