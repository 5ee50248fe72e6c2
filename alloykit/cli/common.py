"""Helpers shared by CLI commands: config resolution and error reporting."""

import functools
from pathlib import Path
from typing import Any, Callable, Optional

import typer
from pydantic import BaseModel, ConfigDict, Field

from ..core.config import load_config
from ..core.context import ApplicationContext
from ..core.enums import SubstrateKind
from ..core.errors import (
    AlloyKitError,
    AmbiguousUnitError,
    LogPermissionError,
    ValidationError,
)
from ..core.log import get_logger
from ..core.types import AlloyKitConfig, BatchResult, CleanResult
from ..utils.output import (
    print_details,
    print_error,
    print_remediation,
    print_success,
    print_warning,
)

logger = get_logger(__name__)


class GlobalCliOptions(BaseModel):
    """Global CLI options that can be used across all commands."""

    verbose: int = Field(0, description="Increase verbosity level")
    config_file: Optional[Path] = Field(None, description="Configuration file path")
    log_level: str = Field(
        "WARNING", description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    substrate: Optional[SubstrateKind] = Field(
        None, description="Where units run: container or native"
    )

    model_config = ConfigDict(use_enum_values=False)


def cli_options(ctx: typer.Context) -> GlobalCliOptions:
    obj = ctx.find_root().obj or {}
    return obj.get("cli_options") or GlobalCliOptions()


def resolve_config(
    ctx: typer.Context, config_file: Optional[Path] = None, **overrides: Any
) -> AlloyKitConfig:
    """Load config with command-level overrides over the global options."""
    options = cli_options(ctx)
    return load_config(
        config_file=config_file or options.config_file,
        substrate=options.substrate,
        log_level=options.log_level,
        verbose=options.verbose,
        **overrides,
    )


def make_context(ctx: typer.Context, config: AlloyKitConfig) -> ApplicationContext:
    obj = ctx.find_root().obj or {}
    factory = obj.get("context_factory", ApplicationContext.create)
    return factory(config)


def build_context(
    ctx: typer.Context, config_file: Optional[Path] = None, **overrides: Any
) -> ApplicationContext:
    return make_context(ctx, resolve_config(ctx, config_file, **overrides))


def report_error(error: AlloyKitError) -> None:
    """Print an expected error with its collected details."""
    print_error(error.message)
    if isinstance(error, AmbiguousUnitError):
        print_details(error.candidates)
    elif isinstance(error, ValidationError) and error.errors != [error.message]:
        print_details(error.errors)
    if isinstance(error, LogPermissionError):
        print_remediation(error.remediation)
    logger.debug("Command failed: %s %s", error.message, error.details)


def report_batch(result: BatchResult) -> None:
    """Print per-unit failures and the summary line; exit 1 on any failure."""
    for name, message in result.failed.items():
        print_error(f"{name}: {message}")
    if result.ok:
        print_success(f"{result.action}: {result.summary()}")
        return
    print_error(f"{result.action}: {result.summary()}")
    raise typer.Exit(1)


def report_clean(result: CleanResult, subject: str) -> None:
    """Print removal failures and a summary; exit 1 if anything was left behind."""
    failures = dict(result.stopped.failed)
    failures.update(result.failures)
    for name, message in failures.items():
        print_error(f"{name}: {message}")
    if not result.ok:
        print_error(f"{subject} finished with {len(failures)} error(s)")
        raise typer.Exit(1)
    print_success(
        f"{subject}: removed {len(result.removed_units)} unit(s) and "
        f"{len(result.removed_volumes)} volume(s)"
    )


def interruptible(command: Callable[..., None]) -> Callable[..., None]:
    """Exit with 130 on Ctrl+C instead of click's generic abort."""

    @functools.wraps(command)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            command(*args, **kwargs)
        except KeyboardInterrupt:
            print_warning("Interrupted by user")
            raise typer.Exit(130)

    return wrapper
