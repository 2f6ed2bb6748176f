"""Backup subcommand group for haproxy-assist CLI.

Commands for creating, inspecting, restoring and pruning configuration
backups.
"""

from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from haproxy_assist.cli_utils import (
    EXIT_BACKUP_ERROR,
    AppContext,
    _error,
    _fail,
    _info,
    _success,
    _warning,
    console,
    get_app_context,
)
from haproxy_assist.core.backup import DEFAULT_BACKUP_REASON
from haproxy_assist.core.exceptions import HaproxyAssistError

backup_app = typer.Typer(
    name="backup",
    help="Configuration backup commands",
    no_args_is_help=True,
)


def _resolve_backup(app_ctx: AppContext, backup: str) -> Path:
    """Accept either a path or a bare backup file name from the backup directory."""
    path = Path(backup).expanduser()
    if path.exists() or path.parent != Path("."):
        return path
    return app_ctx.settings.backup_dir / path


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    return f"{size / 1024:.1f} KB"


@backup_app.command("create")
def create_command(
    ctx: typer.Context,
    reason: str = typer.Option(
        DEFAULT_BACKUP_REASON, "--reason", "-r", help="Reason recorded in the backup header"
    ),
) -> None:
    """Back up the configuration file now."""
    app_ctx = get_app_context(ctx)
    try:
        backup_path = app_ctx.backup_manager().create(app_ctx.config_file, reason)
    except HaproxyAssistError as e:
        _fail(e)
    _success(f"Backup created: {backup_path}")


@backup_app.command("list")
def list_command(
    ctx: typer.Context,
    pattern: str | None = typer.Option(
        None,
        "--pattern",
        "-p",
        help="Config basename to match (defaults to the managed file's name, '*' for all)",
    ),
) -> None:
    """List backups, newest first."""
    app_ctx = get_app_context(ctx)
    records = app_ctx.backup_manager().list_backups(pattern or app_ctx.config_file.name)
    if not records:
        _info(f"No backups found in {app_ctx.settings.backup_dir}")
        return

    table = Table(title=escape(f"Backups in {app_ctx.settings.backup_dir}"))
    table.add_column("Backup", style="cyan", no_wrap=True)
    table.add_column("Created")
    table.add_column("User")
    table.add_column("Reason")
    table.add_column("Size", justify="right")
    for record in records:
        table.add_row(
            escape(record.name),
            escape(record.created or "?"),
            escape(record.user or "?"),
            escape(record.reason or ""),
            _format_size(record.size),
        )
    console.print(table)


@backup_app.command("info")
def info_command(
    ctx: typer.Context,
    backup: str = typer.Argument(..., help="Backup path or file name"),
) -> None:
    """Show a backup's metadata header."""
    app_ctx = get_app_context(ctx)
    try:
        record = app_ctx.backup_manager().info(_resolve_backup(app_ctx, backup))
    except HaproxyAssistError as e:
        _fail(e)

    console.print(f"[bold]{escape(record.name)}[/bold]")
    for label, value in (
        ("Created", record.created),
        ("Original", record.original),
        ("User", record.user),
        ("Reason", record.reason),
        ("Hostname", record.hostname),
    ):
        console.print(f"  {label + ':':<10} {escape(value or '?')}")
    console.print(f"  {'Size:':<10} {_format_size(record.size)}")


@backup_app.command("restore")
def restore_command(
    ctx: typer.Context,
    backup: str = typer.Argument(..., help="Backup path or file name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Restore the configuration file from a backup.

    The current file is backed up first, so a restore can itself be undone.
    """
    app_ctx = get_app_context(ctx)
    backup_path = _resolve_backup(app_ctx, backup)
    if not yes and not typer.confirm(f"Overwrite {app_ctx.config_file} from {backup_path.name}?"):
        _warning("Restore cancelled")
        raise typer.Exit(code=EXIT_BACKUP_ERROR)

    try:
        safety_backup = app_ctx.backup_manager().restore(backup_path, app_ctx.config_file)
    except HaproxyAssistError as e:
        _fail(e)

    _success(f"Restored {app_ctx.config_file} from {backup_path.name}")
    if safety_backup is not None:
        _info(f"Previous content saved to {safety_backup}")


@backup_app.command("delete")
def delete_command(
    ctx: typer.Context,
    backup: str = typer.Argument(..., help="Backup path or file name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete one backup file."""
    app_ctx = get_app_context(ctx)
    backup_path = _resolve_backup(app_ctx, backup)
    if not yes and not typer.confirm(f"Delete backup {backup_path.name}?"):
        _warning("Delete cancelled")
        raise typer.Exit(code=EXIT_BACKUP_ERROR)

    try:
        app_ctx.backup_manager().delete(backup_path)
    except HaproxyAssistError as e:
        _fail(e)
    _success(f"Deleted {backup_path.name}")


@backup_app.command("cleanup")
def cleanup_command(ctx: typer.Context) -> None:
    """Delete the oldest backups beyond the retention count."""
    app_ctx = get_app_context(ctx)
    deleted = app_ctx.backup_manager().cleanup(app_ctx.config_file.name)
    if not deleted:
        _info(f"Nothing to clean up (retention: {app_ctx.settings.backup_retention})")
        return
    for path in deleted:
        console.print(f"  [dim]removed[/dim] {escape(path.name)}")
    _success(f"Removed {len(deleted)} old backup(s)")


@backup_app.command("compress")
def compress_command(
    ctx: typer.Context,
    days: int | None = typer.Option(
        None,
        "--days",
        "-d",
        min=0,
        help="Compress backups older than this many days (defaults to settings)",
    ),
) -> None:
    """Gzip old backups of the configuration file."""
    app_ctx = get_app_context(ctx)
    threshold = app_ctx.settings.backup_compress_days if days is None else days
    compressed = app_ctx.backup_manager().compress(threshold, app_ctx.config_file.name)
    if not compressed:
        _info(f"No backups older than {threshold} day(s) to compress")
        return
    for path in compressed:
        console.print(f"  [dim]compressed[/dim] {escape(path.name)}")
    _success(f"Compressed {len(compressed)} backup(s)")


@backup_app.command("export")
def export_command(
    ctx: typer.Context,
    backup: str = typer.Argument(..., help="Backup path or file name"),
    destination: Path = typer.Argument(..., help="Destination file or directory"),
) -> None:
    """Copy a backup, header included, to another location."""
    app_ctx = get_app_context(ctx)
    backup_path = _resolve_backup(app_ctx, backup)
    if not backup_path.is_file():
        _error(f"Backup file does not exist: {backup_path}")
        raise typer.Exit(code=EXIT_BACKUP_ERROR)
    try:
        exported = app_ctx.backup_manager().export(backup_path, destination)
    except HaproxyAssistError as e:
        _fail(e)
    _success(f"Exported to {exported}")
