"""
Read-only snapshot of the library contents.

A snapshot is taken from the live store under its exclusive lock and
handed to the pure components (exporter, conflict detector, resolver),
so none of them ever reads the store directly.
"""

from dataclasses import dataclass, field

from bookvault.library.asset import Asset
from bookvault.library.book import Book
from bookvault.library.book_list import BookList


@dataclass(frozen=True)
class LibrarySnapshot:
    """
    Point-in-time copy of the library.

    Attributes:
        books: Books in store insertion order
        book_lists: Book lists in store insertion order
        categories: Category vocabulary in display order
        assets: Assets keyed by asset id
    """

    books: list[Book] = field(default_factory=list)
    book_lists: list[BookList] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    assets: dict[str, Asset] = field(default_factory=dict)

    def book_ids(self) -> set[str]:
        """Ids of all books in the snapshot."""
        return {book.id for book in self.books}

    def list_ids(self) -> set[str]:
        """Ids of all book lists in the snapshot."""
        return {book_list.id for book_list in self.book_lists}

    def list_names(self) -> set[str]:
        """Names of all book lists in the snapshot."""
        return {book_list.name for book_list in self.book_lists}

    def find_list_by_name(self, name: str) -> BookList | None:
        """Return the first list whose name equals name (case-sensitive)."""
        for book_list in self.book_lists:
            if book_list.name == name:
                return book_list
        return None
