"""Install and uninstall CLI commands."""

from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from ...core.components import INSTALL_ORDER, get_spec
from ...core.errors import AlloyKitError, ValidationError
from ...core.log import get_logger
from ...core.types import AlloyKitConfig
from ...core.value_objects import InstanceName
from ...orchestration.installer import MARKER_NAME, Installer, InstallReport, find_installations
from ...utils.filesystem import tail_lines
from ...utils.output import print_details, print_error, print_status, print_success, print_warning
from ..common import cli_options, make_context, report_clean, report_error, resolve_config

console = Console()
logger = get_logger(__name__)

_HELP = {
    "non_interactive": "Use defaults, config file and environment without prompting",
    "dry_run": "Validate and show planned actions without changing anything",
    "config": "Configuration file (KEY=VALUE or YAML)",
    "install_dir": "Installation directory to remove",
    "yes": "Do not ask for confirmation",
}


def _prompt_for_settings(config: AlloyKitConfig) -> Dict[str, Any]:
    """Ask for install dir, instance name and ports, defaulting to the resolved config."""
    overrides: Dict[str, Any] = {}
    overrides["install_dir"] = typer.prompt(
        "Installation directory", default=str(config.install_dir)
    )
    while True:
        name = typer.prompt("Instance name", default=config.instance_name)
        if InstanceName.is_valid(name):
            overrides["instance_name"] = name
            break
        print_error("Instance name may only contain letters, digits, '-' and '_'")
    for component in INSTALL_ORDER:
        overrides[f"{component.value}_port"] = typer.prompt(
            f"{get_spec(component).display_name} port",
            default=config.ports.for_component(component),
            type=int,
        )
    return overrides


def _print_plan(report: InstallReport) -> None:
    print_status(f"Dry run for instance '{report.instance}' in {report.install_dir}")
    print_details(report.planned_actions)
    print_success("Configuration is valid; no changes were made")


def _print_summary(config: AlloyKitConfig, report: InstallReport) -> None:
    table = Table(title=f"AlloyKit instance '{report.instance}'")
    table.add_column("Service", style="cyan")
    table.add_column("URL", style="green")
    table.add_column("Ready")
    for component in INSTALL_ORDER:
        ready = report.readiness.get(component.value, False)
        table.add_row(
            get_spec(component).display_name,
            report.urls.get(component.value, ""),
            "[green]yes[/green]" if ready else "[yellow]not yet[/yellow]",
        )
    console.print(table)
    console.print(f"Grafana login: admin / {config.grafana_admin_password}")
    console.print(f"Add log files with: alloykit add-logs PATH --instance {report.instance}")


def _show_log_tail(installer: Installer) -> None:
    lines = tail_lines(installer.install_log, 10)
    if not lines:
        return
    print_status(f"Last lines of {installer.install_log}:")
    print_details(lines, indent="    ")


def install(
    ctx: typer.Context,
    non_interactive: bool = typer.Option(
        False, "--non-interactive", help=_HELP["non_interactive"]
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help=_HELP["dry_run"]),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help=_HELP["config"]
    ),
) -> None:
    """Install Prometheus, Loki, Grafana and Alloy as one instance."""
    installer: Optional[Installer] = None
    try:
        config = resolve_config(ctx, config_file)
        has_file = (config_file or cli_options(ctx).config_file) is not None
        if not non_interactive and not has_file:
            config = resolve_config(ctx, config_file, **_prompt_for_settings(config))

        installer = make_context(ctx, config).installer()
        report = installer.install(dry_run=dry_run)
    except ValidationError as e:
        report_error(e)
        raise typer.Exit(1)
    except AlloyKitError as e:
        report_error(e)
        if installer is not None and installer.rolled_back:
            leftovers = installer.rollback_failures
            if leftovers:
                print_warning("Installation failed; these changes could not be rolled back:")
                print_details(leftovers)
            else:
                print_warning("Installation failed; all changes were rolled back")
            _show_log_tail(installer)
        raise typer.Exit(1)

    if report.dry_run:
        _print_plan(report)
        return
    print_success(f"Instance '{report.instance}' installed in {report.install_dir}")
    _print_summary(config, report)


def _resolve_install_dir(install_dir: Optional[Path], non_interactive: bool) -> Optional[Path]:
    if install_dir is not None:
        return install_dir
    found = find_installations()
    if not found:
        return None
    if len(found) == 1 or non_interactive:
        return found[0]
    print_status("Found several installations:")
    for index, path in enumerate(found, start=1):
        console.print(f"  {index}) {path}")
    choice = typer.prompt("Select installation", type=typer.IntRange(1, len(found)), default=1)
    return found[choice - 1]


def uninstall(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help=_HELP["config"]
    ),
    install_dir: Optional[Path] = typer.Option(
        None, "--install-dir", help=_HELP["install_dir"]
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help=_HELP["yes"]),
) -> None:
    """Remove an instance's units, volumes, network and install directory."""
    try:
        if config_file is None and cli_options(ctx).config_file is None:
            target = _resolve_install_dir(install_dir, yes)
            if target is None:
                print_error("No AlloyKit installation found; pass --install-dir or --config")
                raise typer.Exit(1)
            marker = target / MARKER_NAME
            if marker.is_file():
                config = resolve_config(ctx, marker, install_dir=str(target))
            else:
                config = resolve_config(ctx, install_dir=str(target))
        else:
            overrides = {"install_dir": str(install_dir)} if install_dir else {}
            config = resolve_config(ctx, config_file, **overrides)

        print_status(
            f"Uninstalling instance '{config.instance_name}' from {config.resolved_install_dir}"
        )
        if not yes and not typer.confirm("This removes all data of this instance. Continue?"):
            print_status("Uninstall cancelled")
            raise typer.Exit(0)

        result = make_context(ctx, config).installer().uninstall()
    except AlloyKitError as e:
        report_error(e)
        raise typer.Exit(1)

    report_clean(result, f"Uninstall of instance '{config.instance_name}'")
