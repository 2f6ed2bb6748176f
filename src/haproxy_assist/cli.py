"""Typer CLI entry point for haproxy-assist.

This module only parses arguments and delegates to the core modules; every
mutating command loads the configuration, edits the in-memory store and
commits it through the backup-guarded writer.
"""

import logging
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from haproxy_assist.cli_utils import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_VALIDATION_ERROR,
    AppContext,
    _error,
    _fail,
    _info,
    _setup_logging,
    _success,
    _warning,
    console,
    get_app_context,
)
from haproxy_assist.core.config import load_settings
from haproxy_assist.core.diff import diff_files
from haproxy_assist.core.document import ConfigDocument
from haproxy_assist.core.exceptions import ConfigError, HaproxyAssistError
from haproxy_assist.core.store import SectionType
from haproxy_assist.core.validator import (
    check_config_warnings,
    check_directive_value,
    validate_config_file,
)
from haproxy_assist.core.writer import create_config_file, default_store, render_section, serialize

# Module logger
logger = logging.getLogger(__name__)


app = typer.Typer(
    name="haproxy-assist",
    help="Backup-guarded editor for HAProxy configuration files",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    file: str | None = typer.Option(
        None,
        "--file",
        "-f",
        help="HAProxy configuration file (defaults to /etc/haproxy/haproxy.cfg)",
    ),
    backup_dir: str | None = typer.Option(
        None,
        "--backup-dir",
        help="Backup directory (defaults to ~/.haproxy-assist/backups)",
    ),
    settings: str | None = typer.Option(
        None,
        "--settings",
        help="Settings file (defaults to ~/.haproxy-assist/config.yaml)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug output (show detailed logging)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
) -> None:
    """Backup-guarded editor for HAProxy configuration files."""
    if ctx.invoked_subcommand is None:
        raise typer.Exit()

    try:
        loaded = load_settings(
            settings,
            overrides={"config_file": file, "backup_dir": backup_dir},
        )
    except ConfigError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    _setup_logging(verbose, quiet, loaded.log_file)
    logger.debug("Using config file %s, backups in %s", loaded.config_file, loaded.backup_dir)
    ctx.obj = AppContext(settings=loaded, verbose=verbose)


# ============================================================================
# Helpers
# ============================================================================


def _load(app_ctx: AppContext) -> ConfigDocument:
    try:
        document = ConfigDocument.load(app_ctx.config_file)
    except HaproxyAssistError as e:
        _fail(e)
    if document.warnings:
        _warning(f"{len(document.warnings)} line(s) skipped while parsing {document.path}")
    return document


def _save(app_ctx: AppContext, document: ConfigDocument, reason: str) -> None:
    try:
        backup_path = document.save(
            reason, app_ctx.backup_manager(), lock_timeout=app_ctx.settings.lock_timeout
        )
    except HaproxyAssistError as e:
        _fail(e)
    _success(reason)
    _info(f"Backup: {backup_path}")


def _print_text(text: str) -> None:
    console.print(text, markup=False, highlight=False, soft_wrap=True, end="")


# ============================================================================
# Read-only commands
# ============================================================================


@app.command()
def show(
    ctx: typer.Context,
    section: str | None = typer.Argument(
        None, help="Section reference (e.g. global, frontend:web); whole file if omitted"
    ),
) -> None:
    """Print the configuration as it would be written."""
    document = _load(get_app_context(ctx))
    if section is None:
        _print_text(serialize(document.store))
        return
    try:
        found = document.store.get_section(section)
    except (HaproxyAssistError, ValueError) as e:
        _fail(e)
    _print_text("\n".join(render_section(found)) + "\n")


@app.command()
def sections(
    ctx: typer.Context,
    section_type: SectionType | None = typer.Option(
        None, "--type", "-t", help="Only list sections of this type"
    ),
) -> None:
    """List sections in file order."""
    document = _load(get_app_context(ctx))

    table = Table(title=escape(f"Sections in {document.path.name}"))
    table.add_column("Section", style="cyan", no_wrap=True)
    table.add_column("Directives", justify="right")
    table.add_column("Array entries", justify="right")
    for found in document.store.sections(section_type):
        array_count = sum(len(values) for values in found.arrays.values())
        table.add_row(found.ref, str(len(found.directives)), str(array_count))
    console.print(table)


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show summary counts for the configuration."""
    document = _load(get_app_context(ctx))
    summary = document.store.stats()
    console.print(f"[bold]{escape(str(document.path))}[/bold]")
    console.print(f"  Sections:   {summary.sections}")
    console.print(f"  Frontends:  {summary.frontends}")
    console.print(f"  Backends:   {summary.backends}")
    console.print(f"  Listens:    {summary.listens}")
    console.print(f"  Servers:    {summary.servers}")
    console.print(f"  Directives: {summary.directives}")


@app.command(name="list-values")
def list_values(
    ctx: typer.Context,
    section: str = typer.Argument(..., help="Section reference (e.g. backend:app)"),
    name: str = typer.Argument(..., help="Array directive name (e.g. server)"),
) -> None:
    """List an array directive's values with their indices."""
    document = _load(get_app_context(ctx))
    try:
        target = document.store.get_section(section)
    except (HaproxyAssistError, ValueError) as e:
        _fail(e)
    values = target.values(name)
    if not values:
        _info(f"No '{name}' entries in {target.ref}")
        return
    for index, value in enumerate(values):
        console.print(f"  [{index}] {name} {value}", markup=False, highlight=False)


@app.command()
def validate(ctx: typer.Context) -> None:
    """Check the configuration with ``haproxy -c``."""
    app_ctx = get_app_context(ctx)
    try:
        result = validate_config_file(app_ctx.config_file, app_ctx.settings.haproxy_binary)
    except HaproxyAssistError as e:
        _fail(e)

    if result.skipped:
        _warning(f"{app_ctx.settings.haproxy_binary} not found, validation skipped")
        return
    if result.output:
        _print_text(result.output + "\n")
    if not result.valid:
        _error("Configuration is invalid")
        raise typer.Exit(code=EXIT_VALIDATION_ERROR)
    _success("Configuration is valid")


@app.command()
def check(ctx: typer.Context) -> None:
    """Warn about common gaps (no frontends, backends without servers)."""
    document = _load(get_app_context(ctx))
    warnings = check_config_warnings(document.store)
    if not warnings:
        _success("No configuration warnings")
        return
    for message in warnings:
        _warning(message)
    _info(f"Found {len(warnings)} warning(s) in configuration")


@app.command()
def diff(
    old: Path = typer.Argument(..., help="Original file (e.g. a backup)"),
    new: Path = typer.Argument(..., help="Modified file"),
) -> None:
    """Show a unified text diff between two files."""
    try:
        lines = diff_files(old, new)
    except HaproxyAssistError as e:
        _fail(e)
    if not lines:
        _info("Files are identical")
        return
    for line in lines:
        style = None
        if line.startswith("+") and not line.startswith("+++"):
            style = "green"
        elif line.startswith("-") and not line.startswith("---"):
            style = "red"
        console.print(line, style=style, markup=False, highlight=False, soft_wrap=True)


# ============================================================================
# Mutating commands
# ============================================================================


@app.command()
def init(ctx: typer.Context) -> None:
    """Create a starter configuration (global + defaults) if none exists."""
    app_ctx = get_app_context(ctx)
    if app_ctx.config_file.exists():
        _error(f"Config file already exists: {app_ctx.config_file}")
        raise typer.Exit(code=EXIT_ERROR)
    try:
        create_config_file(default_store(), app_ctx.config_file)
    except HaproxyAssistError as e:
        _fail(e)
    _success(f"Created {app_ctx.config_file}")


@app.command(name="add-section")
def add_section(
    ctx: typer.Context,
    section_type: SectionType = typer.Argument(..., help="Section type"),
    name: str = typer.Argument("", help="Section name (frontend/backend/listen)"),
) -> None:
    """Add a new section at the end of the file."""
    app_ctx = get_app_context(ctx)
    document = _load(app_ctx)
    try:
        added = document.store.add_section(section_type, name)
    except (HaproxyAssistError, ValueError) as e:
        _fail(e)
    reason = f"Added {added.type.value}"
    if added.name:
        reason = f"{reason}: {added.name}"
    _save(app_ctx, document, reason)


@app.command(name="delete-section")
def delete_section(
    ctx: typer.Context,
    section: str = typer.Argument(..., help="Section reference (e.g. frontend:web)"),
) -> None:
    """Delete a section with all of its directives."""
    app_ctx = get_app_context(ctx)
    document = _load(app_ctx)
    try:
        removed = document.store.delete_section(section)
    except (HaproxyAssistError, ValueError) as e:
        _fail(e)
    _save(app_ctx, document, f"Deleted section: {removed.ref}")


@app.command(name="set")
def set_directive(
    ctx: typer.Context,
    section: str = typer.Argument(..., help="Section reference (e.g. defaults)"),
    name: str = typer.Argument(..., help="Directive name (e.g. 'timeout connect')"),
    value: str = typer.Argument("", help="Directive value (empty for flags like 'daemon')"),
    comment: str | None = typer.Option(None, "--comment", "-c", help="Trailing comment"),
    check: bool = typer.Option(
        True, "--check/--no-check", help="Check the value format (timeouts) before saving"
    ),
) -> None:
    """Set a single-valued directive (overwrites an existing value)."""
    app_ctx = get_app_context(ctx)
    document = _load(app_ctx)
    try:
        if check:
            check_directive_value(name, value)
        target = document.store.get_section(section)
        target.set(name, value, comment)
    except (HaproxyAssistError, ValueError) as e:
        _fail(e)
    _save(app_ctx, document, f"Set {' '.join(name.split())} in {target.ref}")


@app.command()
def unset(
    ctx: typer.Context,
    section: str = typer.Argument(..., help="Section reference"),
    name: str = typer.Argument(..., help="Directive name"),
) -> None:
    """Remove a single-valued directive."""
    app_ctx = get_app_context(ctx)
    document = _load(app_ctx)
    try:
        target = document.store.get_section(section)
    except (HaproxyAssistError, ValueError) as e:
        _fail(e)
    if not target.unset(name):
        _error(f"Directive '{name}' is not set in {target.ref}")
        raise typer.Exit(code=EXIT_ERROR)
    _save(app_ctx, document, f"Removed {' '.join(name.split())} from {target.ref}")


@app.command(name="add-value")
def add_value(
    ctx: typer.Context,
    section: str = typer.Argument(..., help="Section reference (e.g. backend:app)"),
    name: str = typer.Argument(..., help="Array directive name (e.g. server)"),
    value: str = typer.Argument(..., help="Value (e.g. 'web1 10.0.0.1:80 check')"),
    check: bool = typer.Option(
        True,
        "--check/--no-check",
        help="Check the value format (bind, server, acl) before saving",
    ),
) -> None:
    """Append a value to an array directive (server, bind, acl, ...)."""
    app_ctx = get_app_context(ctx)
    document = _load(app_ctx)
    try:
        if check:
            check_directive_value(name, value)
        target = document.store.get_section(section)
        index = target.add_value(name, value)
    except (HaproxyAssistError, ValueError) as e:
        _fail(e)
    _save(app_ctx, document, f"Added {name}[{index}] to {target.ref}")


@app.command(name="delete-value")
def delete_value(
    ctx: typer.Context,
    section: str = typer.Argument(..., help="Section reference"),
    name: str = typer.Argument(..., help="Array directive name"),
    index: int = typer.Argument(..., help="Index as shown by list-values"),
) -> None:
    """Delete one array directive value by index."""
    app_ctx = get_app_context(ctx)
    document = _load(app_ctx)
    try:
        target = document.store.get_section(section)
        removed = target.delete_value(name, index)
    except (HaproxyAssistError, ValueError) as e:
        _fail(e)
    _save(app_ctx, document, f"Deleted {name} from {target.ref}: {removed}")


# ============================================================================
# Register sub-apps (command groups)
# ============================================================================

from haproxy_assist.commands.backup import backup_app  # noqa: E402

app.add_typer(backup_app, name="backup")

