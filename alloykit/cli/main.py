"""Main CLI entry point for AlloyKit."""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..core.components import INSTALL_ORDER, get_spec
from ..core.enums import SubstrateKind
from ..core.errors import AlloyKitError
from ..core.log import configure_logging, get_logger
from .common import GlobalCliOptions, interruptible, report_error, resolve_config
from .commands import fleet, install, sources

app = typer.Typer(
    name="alloykit",
    help="Install and operate Prometheus, Loki, Grafana and Alloy instances",
    no_args_is_help=True,
    rich_markup_mode="markdown",
)
app.command()(interruptible(install.install))
app.command()(interruptible(install.uninstall))
app.command()(interruptible(fleet.status))
app.command()(interruptible(fleet.start))
app.command()(interruptible(fleet.stop))
app.command()(interruptible(fleet.restart))
app.command()(interruptible(fleet.clean))
app.command()(interruptible(fleet.logs))
app.command("add-logs")(interruptible(sources.add_logs))

console = Console()
logger = get_logger(__name__)


@app.callback()
def main(
    ctx: typer.Context,
    substrate: Optional[SubstrateKind] = typer.Option(
        None, "--substrate", case_sensitive=False, help="Run units as containers or native processes"
    ),
    verbose: int = typer.Option(
        0, "--verbose", "-v", count=True, help="Increase verbosity level"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR) - explicit level",
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file path"
    ),
) -> None:
    """AlloyKit: observability stack installer and fleet manager."""
    if verbose > 0 and log_level is not None:
        console.print("[red]Error: Cannot specify both --verbose and --log-level[/red]")
        raise typer.Exit(1)

    if log_level is None:
        resolved_log_level = (
            "DEBUG" if verbose >= 2 else "INFO" if verbose == 1 else "WARNING"
        )
    else:
        resolved_log_level = log_level.upper()

    cli_options = GlobalCliOptions(
        verbose=verbose,
        config_file=config_file,
        log_level=resolved_log_level,
        substrate=substrate,
    )

    ctx.ensure_object(dict)
    ctx.obj["cli_options"] = cli_options

    configure_logging(
        level=cli_options.log_level, enable_console=True, enable_json=False
    )


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__

    table = Table(title="AlloyKit Version Information")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")
    table.add_row("AlloyKit", __version__)
    for component in INSTALL_ORDER:
        spec = get_spec(component)
        table.add_row(spec.display_name, spec.version)
    console.print(table)


@app.command()
def config(ctx: typer.Context) -> None:
    """Show the effective configuration."""
    try:
        current = resolve_config(ctx)
    except AlloyKitError as e:
        report_error(e)
        raise typer.Exit(1)

    table = Table(title="AlloyKit Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Instance", current.instance_name)
    table.add_row("Install Directory", str(current.resolved_install_dir))
    table.add_row("Substrate", current.substrate.value)
    for component in INSTALL_ORDER:
        table.add_row(
            f"{get_spec(component).display_name} Port",
            str(current.ports.for_component(component)),
        )
    table.add_row("Download Directory", str(current.resolved_download_dir))
    if current.substrate == SubstrateKind.NATIVE:
        table.add_row("State Directory", str(current.resolved_state_dir))
    table.add_row("Retry", f"{current.retry.max_attempts} x {current.retry.delay}s")
    table.add_row("Substrate Command Timeout", f"{current.timeouts.substrate_command}s")
    table.add_row("Image Pull Timeout", f"{current.timeouts.image_pull}s")
    table.add_row("Readiness Wait", f"{current.timeouts.readiness_max_wait}s")
    table.add_row("Log Level", current.log_level)
    console.print(table)


def cli_main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except (RuntimeError, OSError, ValueError) as e:
        logger.error("Unexpected error: %s", e)
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
