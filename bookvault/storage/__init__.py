"""
bookvault.storage - Persistent library storage.
"""

from bookvault.storage.db import LibraryDatabase

__all__ = ["LibraryDatabase"]
