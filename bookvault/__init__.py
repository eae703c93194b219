"""
bookvault - Backup, restore and conflict-aware import for a book library.

Serializes a library of books, book lists and cover images into verifiable
archives, and merges such archives back into an existing library without
silent data loss.
"""

__version__ = "0.3.0"
