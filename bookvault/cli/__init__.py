"""CLI package for bookvault."""

from bookvault.cli.formatters import (
    show_backup_error,
    show_conflict_preview,
    show_dataset_info,
    show_import_summary,
)
from bookvault.cli.main import build_strategy, cli, get_config_file

__all__ = [
    "build_strategy",
    "cli",
    "get_config_file",
    "show_backup_error",
    "show_conflict_preview",
    "show_dataset_info",
    "show_import_summary",
]
