"""Log source registration CLI command."""

from typing import Optional

import typer

from ...core.enums import ReconfigState
from ...core.errors import AlloyKitError
from ...core.log import get_logger
from ...utils.output import print_details, print_status, print_success, print_warning
from ..common import build_context, report_error

logger = get_logger(__name__)


def add_logs(
    ctx: typer.Context,
    path: str = typer.Argument(help="Log file, directory or glob pattern (e.g. /var/log/nginx/*.log)"),
    job: Optional[str] = typer.Argument(None, help="Job label (default: file name without .log)"),
    instance: Optional[str] = typer.Option(
        None, "--instance", "-i", help="Instance whose collector should read the logs"
    ),
) -> None:
    """Register a log location with the running collector."""
    overrides = {"instance_name": instance} if instance else {}
    try:
        registrar = build_context(ctx, **overrides).registrar()
        print_status(f"Adding log location {path}")
        result = registrar.register(path, job, instance)
    except AlloyKitError as e:
        report_error(e)
        raise typer.Exit(1)

    for warning in result.warnings:
        print_warning(warning)
    print_details(
        [
            f"Job: {result.job_name}",
            f"Section: {result.section_id}",
            f"Collector path: {result.collector_path}",
            f"Backup: {result.backup_path}",
        ]
    )
    if result.state == ReconfigState.ACTIVE:
        print_success(f"Log location {path} added; {result.unit} is ready")
    else:
        print_warning(f"Log location {path} added, but {result.unit} is not ready yet")
