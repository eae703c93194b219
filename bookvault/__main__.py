"""
Entry point for running bookvault as a module.

Usage:
    python -m bookvault --help
    python -m bookvault export --full --output library.zip
    python -m bookvault import library.zip --dry-run
"""

from bookvault.cli import cli

if __name__ == "__main__":
    cli()
