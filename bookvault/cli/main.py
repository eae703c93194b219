"""
Command-line interface for bookvault.

Provides CLI commands for exporting, validating and importing library
backups, and for inspecting the library and managed backups.

Usage:
    # Show help
    bookvault --help

    # Export
    bookvault export
    bookvault export --full --output library.zip

    # Check a backup without importing it
    bookvault validate library.zip

    # Import, previewing conflicts first
    bookvault import library.zip --dry-run
    bookvault import library.zip --book-action skip --yes
"""

import sys
from pathlib import Path
from typing import Any, Optional

import click

from bookvault import __version__
from bookvault.backup.errors import BackupError
from bookvault.backup.manager import BackupManager
from bookvault.backup.manifest import BackupFormat
from bookvault.backup.validator import BackupValidator
from bookvault.cli.formatters import (
    show_backup_error,
    show_conflict_preview,
    show_dataset_info,
    show_import_summary,
)
from bookvault.config.generator import save_config_file
from bookvault.config.loader import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader
from bookvault.merge.importer import ImportOrchestrator
from bookvault.merge.strategy import (
    BookAction,
    CommentMerge,
    FieldMerge,
    ImportStrategy,
    ListAction,
)
from bookvault.storage.db import LibraryDatabase
from bookvault.utils.logging import cleanup_old_logs, get_logger, setup_logging
from bookvault.utils.paths import (
    CONFIG_DIR_ENV_VAR,
    DEFAULT_BACKUP_DIR_NAME,
    DEFAULT_DB_FILE,
    resolve_config_dir,
)


def get_config_file(config_file: Optional[str], config_dir: Path) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file).expanduser()
    return config_dir / DEFAULT_CONFIG_FILE


def get_db_path(ctx: click.Context) -> Path:
    """Database path: --db, then the db_path option, then the config dir."""
    if ctx.obj.get("db_path"):
        return Path(ctx.obj["db_path"]).expanduser()
    config = ctx.obj["config"]
    if config.get("db_path"):
        return Path(config["db_path"]).expanduser()
    return ctx.obj["config_dir"] / DEFAULT_DB_FILE


def open_database(ctx: click.Context) -> LibraryDatabase:
    """Open and initialize the library database."""
    db_path = get_db_path(ctx)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = LibraryDatabase(str(db_path))
    db.initialize()
    return db


def get_backup_manager(ctx: click.Context) -> BackupManager:
    """Create the backup manager from configuration."""
    config = ctx.obj["config"]
    backup_dir = (
        Path(config["backup_dir"]).expanduser()
        if config.get("backup_dir")
        else ctx.obj["config_dir"] / DEFAULT_BACKUP_DIR_NAME
    )
    return BackupManager(
        backup_dir, retention_count=config.get("backup_retention_count", 10)
    )


def build_strategy(
    config: dict[str, Any],
    list_action: Optional[str],
    book_action: Optional[str],
    comment_merge: Optional[str],
    field_merge: Optional[str],
) -> ImportStrategy:
    """Build the import strategy: CLI options override configured defaults."""
    settings = dict(config)
    overrides = {
        "default_list_action": list_action,
        "default_book_action": book_action,
        "default_comment_merge": comment_merge,
        "default_field_merge": field_merge,
    }
    settings.update({k: v for k, v in overrides.items() if v is not None})
    return ImportStrategy.from_config(settings)


@click.group()
@click.version_option(version=__version__, prog_name="bookvault")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar=CONFIG_DIR_ENV_VAR,
    help="Configuration directory path (default: ~/.bookvault).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="BOOKVAULT_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.option(
    "--db",
    "db_path",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    help="Library database path (default: <config-dir>/library.db).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: Optional[str],
    config_file: Optional[str],
    db_path: Optional[str],
) -> None:
    """
    Book library backup, restore and import.

    Exports the library to integrity-protected backups and imports backups
    with conflict detection and configurable merge strategies.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = resolve_config_dir(config_dir)
    resolved_config_file = get_config_file(config_file, resolved_config_dir)

    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file
    ctx.obj["db_path"] = db_path

    config: dict[str, Any] = {}
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
    except ConfigError as e:
        # Show error but don't fail - allow CLI to work without config file
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}

    ctx.obj["config"] = config

    effective_verbose = verbose or config.get("verbose", False)
    ctx.obj["verbose"] = effective_verbose

    log_dir = (
        Path(config["log_dir"]).expanduser()
        if config.get("log_dir")
        else resolved_config_dir / "logs"
    )
    setup_logging(verbose=effective_verbose, log_dir=log_dir, enable_file_logging=True)
    cleanup_old_logs(log_dir=log_dir, keep_count=config.get("log_retention_count", 10))


# =============================================================================
# Status Command
# =============================================================================


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """
    Show library and backup status.

    Example:

        bookvault status
    """
    logger = get_logger(__name__)

    try:
        db = open_database(ctx)
        manager = get_backup_manager(ctx)
        backups = manager.list_backups()

        click.echo("=== bookvault Status ===\n")
        click.echo(f"Configuration directory: {ctx.obj['config_dir']}")
        click.echo(f"Library database: {get_db_path(ctx)}")
        click.echo()
        click.echo(f"Books: {db.count_books()}")
        click.echo(f"Lists: {db.count_book_lists()}")
        click.echo(f"Categories: {len(db.get_categories())}")
        click.echo(f"Cover assets: {db.count_assets()}")
        click.echo()
        click.echo(f"Backup directory: {manager.backup_dir}")
        if backups:
            click.echo(f"Backups: {len(backups)} (latest: {backups[0].name})")
        else:
            click.echo("Backups: none")

    except Exception as e:
        logger.exception(f"Error getting status: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Export Command
# =============================================================================


@cli.command("export")
@click.option(
    "--full",
    is_flag=True,
    help="Export a full archive including cover images (default: metadata only).",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    help="Output file (default: a new managed backup in the backup directory).",
)
@click.pass_context
def export_command(ctx: click.Context, full: bool, output: Optional[str]) -> None:
    """
    Export the library to a backup file.

    Examples:

        # Metadata-only backup into the backup directory
        bookvault export

        # Full archive to a specific file
        bookvault export --full --output library.zip
    """
    logger = get_logger(__name__)
    backup_format = BackupFormat.FULL if full else BackupFormat.METADATA

    try:
        orchestrator = ImportOrchestrator(open_database(ctx))
        data = (
            orchestrator.export_full_archive()
            if full
            else orchestrator.export_metadata()
        )

        if output:
            path = Path(output).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        else:
            path = get_backup_manager(ctx).save_backup(data, backup_format)

        click.echo(
            click.style(f"Exported {backup_format.value} backup to {path}", fg="green")
        )
        logger.info(f"Exported {len(data)} bytes to {path}")

    except Exception as e:
        logger.exception(f"Export failed: {e}")
        click.echo(click.style(f"Export failed: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Validate Command
# =============================================================================


@cli.command("validate")
@click.argument("file", type=click.Path(exists=False, dir_okay=False))
def validate_command(file: str) -> None:
    """
    Validate a backup file without importing it.

    Example:

        bookvault validate library.zip
    """
    try:
        dataset = BackupValidator().validate_file(Path(file))
    except BackupError as e:
        show_backup_error(e.code, e.details)
        sys.exit(1)

    click.echo(click.style(f"{file} is a valid backup.", fg="green"))
    show_dataset_info(dataset)


# =============================================================================
# Import Command
# =============================================================================


@cli.command("import")
@click.argument("file", type=click.Path(exists=False, dir_okay=False))
@click.option(
    "--list-action",
    type=click.Choice([a.value for a in ListAction]),
    help="Action for lists whose name already exists.",
)
@click.option(
    "--book-action",
    type=click.Choice([a.value for a in BookAction]),
    help="Action for books matching an existing book.",
)
@click.option(
    "--comment-merge",
    type=click.Choice([m.value for m in CommentMerge]),
    help="How merged books combine notes and recommendations.",
)
@click.option(
    "--field-merge",
    type=click.Choice([m.value for m in FieldMerge]),
    help="How merged books combine their other fields.",
)
@click.option(
    "--replace",
    is_flag=True,
    help="Replace the whole library instead of merging into it.",
)
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    help="Preview the import without changing the library.",
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def import_command(
    ctx: click.Context,
    file: str,
    list_action: Optional[str],
    book_action: Optional[str],
    comment_merge: Optional[str],
    field_merge: Optional[str],
    replace: bool,
    dry_run: bool,
    yes: bool,
) -> None:
    """
    Import a backup file into the library.

    Shows the detected conflicts, asks for confirmation, then applies the
    import in a single transaction.

    Examples:

        # Preview
        bookvault import library.zip --dry-run

        # Keep existing books and rename clashing lists
        bookvault import library.zip --book-action skip --list-action rename
    """
    logger = get_logger(__name__)
    config = ctx.obj["config"]

    path = Path(file)
    try:
        artifact = path.read_bytes()
    except OSError as e:
        click.echo(click.style(f"Error: cannot read {file}: {e}", fg="red"), err=True)
        sys.exit(1)

    try:
        strategy = build_strategy(
            config, list_action, book_action, comment_merge, field_merge
        )
    except ValueError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    db = open_database(ctx)
    orchestrator = ImportOrchestrator(db)

    try:
        pending = orchestrator.begin_import(artifact)
    except BackupError as e:
        show_backup_error(e.code, e.details)
        sys.exit(1)

    show_dataset_info(pending.dataset)
    if replace:
        click.echo(
            click.style(
                "\nReplace mode: the current library will be discarded.", fg="yellow"
            )
        )
    else:
        show_conflict_preview(pending.conflicts)

    if dry_run:
        summary = orchestrator.preview_import(pending, strategy, replace=replace)
        orchestrator.cancel_import(pending)
        show_import_summary(summary, dry_run=True)
        return

    if not yes and not click.confirm("\nApply this import?", default=False):
        orchestrator.cancel_import(pending)
        click.echo("Import cancelled.")
        return

    if config.get("backup_before_import", True):
        try:
            backup_path = get_backup_manager(ctx).save_backup(
                orchestrator.export_full_archive(), BackupFormat.FULL
            )
        except OSError as e:
            orchestrator.cancel_import(pending)
            logger.error(f"Pre-import backup failed: {e}")
            click.echo(
                click.style(f"Error: pre-import backup failed: {e}", fg="red"),
                err=True,
            )
            sys.exit(1)
        click.echo(f"Saved pre-import backup to {backup_path}")

    result = orchestrator.confirm_import(pending, strategy, replace=replace)
    if not result.success or result.summary is None:
        if result.error is not None:
            show_backup_error(result.error, result.details)
        sys.exit(1)

    show_import_summary(result.summary)
    click.echo(click.style("\nImport completed successfully!", fg="green"))


# =============================================================================
# Backups Command
# =============================================================================


@cli.command("backups")
@click.pass_context
def backups_command(ctx: click.Context) -> None:
    """
    List managed backups, newest first.

    Example:

        bookvault backups
    """
    manager = get_backup_manager(ctx)
    backups = manager.list_backups()

    if not backups:
        click.echo(f"No backups found in {manager.backup_dir}")
        return

    click.echo(f"Backups in {manager.backup_dir}:\n")
    for backup in backups:
        size_kb = backup.stat().st_size / 1024
        click.echo(f"  {backup.name}  ({size_kb:.1f} KB)")


# =============================================================================
# Init-Config Command
# =============================================================================


@cli.command("init-config")
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing configuration file if it exists.",
)
@click.pass_context
def init_config_command(ctx: click.Context, force: bool) -> None:
    """
    Generate a default configuration file.

    Creates a configuration file with all available options documented
    and commented out.

    Examples:

        bookvault init-config
        bookvault init-config --force
    """
    logger = get_logger(__name__)
    config_file = ctx.obj["config_file"]

    click.echo(f"Creating configuration file: {config_file}")

    success, error = save_config_file(config_file, overwrite=force)

    if success:
        click.echo(click.style("Configuration file created successfully!", fg="green"))
        click.echo(f"\nLocation: {config_file}")
        logger.info(f"Created configuration file: {config_file}")
    else:
        click.echo(click.style(f"Error: {error}", fg="red"), err=True)
        logger.error(f"Failed to create configuration file: {error}")
        sys.exit(1)
