"""
Library data model: books, book lists, cover assets and snapshots.
"""

from bookvault.library.asset import Asset
from bookvault.library.book import Book, ReadingStatus
from bookvault.library.book_list import BookList
from bookvault.library.snapshot import LibrarySnapshot

__all__ = ["Asset", "Book", "BookList", "LibrarySnapshot", "ReadingStatus"]
