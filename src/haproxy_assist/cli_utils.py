"""Shared helpers for the haproxy-assist CLI.

Console output helpers, exit codes, logging setup, and the per-invocation
context (settings + backup manager) shared by all commands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from haproxy_assist.core.backup import BackupManager
from haproxy_assist.core.config import Settings
from haproxy_assist.core.exceptions import (
    BackupError,
    ConfigError,
    HaproxyAssistError,
    ParserError,
    RestoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "EXIT_BACKUP_ERROR",
    "EXIT_CONFIG_ERROR",
    "EXIT_ERROR",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "AppContext",
    "_error",
    "_exit_code_for",
    "_fail",
    "_info",
    "_setup_logging",
    "_success",
    "_warning",
    "console",
    "get_app_context",
]

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_BACKUP_ERROR = 3
EXIT_VALIDATION_ERROR = 4

# Shared Rich console for all output (logging included)
console = Console()


# Messages carry paths, section refs and user input: never Rich markup
def _error(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")


def _success(message: str) -> None:
    console.print(f"[green]✓[/green] {escape(message)}")


def _warning(message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {escape(message)}")


def _info(message: str) -> None:
    console.print(f"[dim]{escape(message)}[/dim]")


def _setup_logging(verbose: bool, quiet: bool, log_file: Path | None = None) -> None:
    """Configure root logging for a CLI invocation.

    Args:
        verbose: DEBUG level (takes precedence over quiet).
        quiet: WARNING level.
        log_file: Optional file that also receives all records.

    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handlers: list[logging.Handler] = [
        RichHandler(console=console, show_path=False, show_time=False, markup=False)
    ]
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            _warning(f"Cannot open log file {log_file}: {e}")
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
            )
            handlers.append(file_handler)

    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)


def _exit_code_for(error: Exception) -> int:
    """Map an exception to the CLI exit code."""
    if isinstance(error, ConfigError | ParserError):
        return EXIT_CONFIG_ERROR
    if isinstance(error, BackupError | RestoreError):
        return EXIT_BACKUP_ERROR
    if isinstance(error, ValidationError):
        return EXIT_VALIDATION_ERROR
    return EXIT_ERROR


def _fail(error: HaproxyAssistError | ValueError) -> NoReturn:
    """Print ``error`` and exit with its mapped code."""
    _error(str(error))
    raise typer.Exit(code=_exit_code_for(error)) from None


@dataclass
class AppContext:
    """Per-invocation state stored on ``typer.Context.obj``."""

    settings: Settings
    verbose: bool = False

    @property
    def config_file(self) -> Path:
        return self.settings.config_file

    def backup_manager(self) -> BackupManager:
        return BackupManager(
            self.settings.backup_dir,
            retention=self.settings.backup_retention,
            lock_timeout=self.settings.lock_timeout,
        )


def get_app_context(ctx: typer.Context) -> AppContext:
    """Return the AppContext installed by the root callback.

    Raises:
        typer.Exit: Callback did not run (should not happen via the CLI).

    """
    obj = ctx.find_object(AppContext)
    if obj is None:
        _error("CLI context not initialized")
        raise typer.Exit(code=EXIT_ERROR)
    return obj
