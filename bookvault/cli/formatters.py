"""CLI output formatting functions.

This module contains functions for displaying validation results, import
conflict previews and import summaries on the command line.
"""

from typing import TYPE_CHECKING, Optional

import click

if TYPE_CHECKING:
    from bookvault.backup.errors import BackupErrorCode
    from bookvault.backup.validator import ValidatedDataSet
    from bookvault.merge.conflict import ConflictInfo
    from bookvault.merge.importer import ImportSummary

# Maximum entries shown per section before truncating
MAX_SHOWN = 10


def _echo_truncated(lines: list[str]) -> None:
    for line in lines[:MAX_SHOWN]:
        click.echo(line)
    if len(lines) > MAX_SHOWN:
        click.echo(f"  ... and {len(lines) - MAX_SHOWN} more")


def show_dataset_info(dataset: "ValidatedDataSet") -> None:
    """
    Display what a validated backup contains.

    Args:
        dataset: Validated data set
    """
    click.echo(f"Format: {dataset.format.value}")
    click.echo(f"Schema version: {dataset.schema_version}")
    click.echo(f"Generated at: {dataset.generated_at.isoformat()}")
    click.echo(f"Books: {len(dataset.books)}")
    click.echo(f"Lists: {len(dataset.book_lists)}")
    click.echo(f"Categories: {len(dataset.categories)}")
    click.echo(f"Assets: {len(dataset.assets)}")


def show_conflict_preview(conflicts: "ConflictInfo") -> None:
    """
    Display the conflicts detected for a pending import.

    Args:
        conflicts: Detector output for the pending import
    """
    click.echo("\n=== Import Preview ===")
    click.echo(f"New books: {len(conflicts.new_books)}")
    click.echo(f"New lists: {len(conflicts.new_lists)}")

    identical = conflicts.identical_books
    changed = [c for c in conflicts.book_conflicts if not c.identical]
    if identical:
        click.echo(f"Identical books (no change): {len(identical)}")

    if changed:
        click.echo(f"\nBook conflicts: {len(changed)}")
        _echo_truncated(
            [
                f"  ~ {c.imported_book.title!r} matches {c.existing_book.title!r} "
                f"by {c.match_type.value}"
                for c in changed
            ]
        )

    if conflicts.list_name_conflicts:
        click.echo(f"\nList name conflicts: {len(conflicts.list_name_conflicts)}")
        _echo_truncated(
            [
                f"  ! {c.imported_name!r} (rename suggestion: {c.suggested_name!r})"
                for c in conflicts.list_name_conflicts
            ]
        )

    if not conflicts.has_conflicts:
        click.echo(click.style("\nNo conflicts detected.", fg="green"))


def show_import_summary(summary: "ImportSummary", dry_run: bool = False) -> None:
    """
    Display the outcome counts of an import.

    Args:
        summary: Import summary
        dry_run: True if nothing was written
    """
    click.echo(f"\n=== Import Summary{' (dry run)' if dry_run else ''} ===")
    click.echo(
        f"Books: {summary.books_added} added, {summary.books_merged} merged, "
        f"{summary.books_skipped} skipped"
    )
    click.echo(
        f"Lists: {summary.lists_created} created, {summary.lists_updated} updated, "
        f"{summary.lists_skipped} skipped"
    )
    click.echo(f"Assets added: {summary.assets_added}")
    click.echo(f"Categories added: {summary.categories_added}")
    written = (
        summary.books + summary.lists + summary.assets + summary.categories_added
    )
    if written == 0:
        click.echo("The library is unchanged.")


def show_backup_error(code: "BackupErrorCode", details: Optional[str]) -> None:
    """
    Display a backup error code and its details on stderr.

    Args:
        code: Error code
        details: Optional diagnostic detail
    """
    message = f"Error [{code.value}] ({code.category.value})"
    if details:
        message = f"{message}: {details}"
    click.echo(click.style(message, fg="red"), err=True)
