"""
Conflict detection between an incoming data set and the live library.

Classifies every incoming list as new or name-conflicting, and every
incoming book as new, identical to an existing book, or conflicting with
one (matched by ISBN first, then by title and author).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from bookvault.backup.validator import ValidatedDataSet
from bookvault.library.book import Book
from bookvault.library.book_list import BookList
from bookvault.library.snapshot import LibrarySnapshot

logger = logging.getLogger(__name__)

IncomingData = Union[ValidatedDataSet, LibrarySnapshot]


class MatchType(str, Enum):
    """Key on which an incoming book matched an existing one."""

    ISBN = "isbn"
    TITLE_AUTHOR = "title-author"


@dataclass(frozen=True)
class ListNameConflict:
    """
    An incoming list whose name is already used by an existing list.

    Attributes:
        imported_name: Name of the incoming list
        existing_name: Name of the existing list (equal to imported_name)
        suggested_name: Unique name to use when the list is renamed
        imported_list: The incoming list
        existing_list: The existing list
    """

    imported_name: str
    existing_name: str
    suggested_name: str
    imported_list: BookList
    existing_list: BookList


@dataclass(frozen=True)
class BookConflict:
    """
    An incoming book that matches an existing book.

    Attributes:
        imported_book: The incoming book
        existing_book: The first matching existing book
        match_type: Key the books matched on
        identical: True when both books have the same content
    """

    imported_book: Book
    existing_book: Book
    match_type: MatchType
    identical: bool = False


@dataclass
class ConflictInfo:
    """
    Classification of an incoming data set against the live library.

    Attributes:
        list_name_conflicts: Incoming lists whose names already exist
        book_conflicts: Incoming books matching existing books
        new_books: Incoming books with no match
        new_lists: Incoming lists with no name conflict
    """

    list_name_conflicts: list[ListNameConflict] = field(default_factory=list)
    book_conflicts: list[BookConflict] = field(default_factory=list)
    new_books: list[Book] = field(default_factory=list)
    new_lists: list[BookList] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        """True if any list or book conflict was found."""
        return bool(self.list_name_conflicts or self.book_conflicts)

    @property
    def identical_books(self) -> list[BookConflict]:
        """Book conflicts whose books have identical content."""
        return [c for c in self.book_conflicts if c.identical]

    def book_conflict_for(self, book_id: str) -> Optional[BookConflict]:
        """Return the conflict for the incoming book with id book_id, if any."""
        for conflict in self.book_conflicts:
            if conflict.imported_book.id == book_id:
                return conflict
        return None

    def list_conflict_for(self, list_id: str) -> Optional[ListNameConflict]:
        """Return the conflict for the incoming list with id list_id, if any."""
        for conflict in self.list_name_conflicts:
            if conflict.imported_list.id == list_id:
                return conflict
        return None


def suggest_list_name(base: str, taken: set[str]) -> str:
    """
    Suggest a unique list name of the form "<base> (n)".

    Args:
        base: Conflicting list name
        taken: Names that must not be returned

    Returns:
        First "<base> (n)" for n = 2, 3, ... not in taken
    """
    n = 2
    while f"{base} ({n})" in taken:
        n += 1
    return f"{base} ({n})"


class ConflictDetector:
    """
    Detects list name and book conflicts for an import.

    The detector is stateless and never modifies its inputs.

    Usage:
        detector = ConflictDetector()
        info = detector.detect(dataset, database.snapshot())
        for conflict in info.book_conflicts:
            print(conflict.imported_book.title, conflict.match_type.value)
    """

    def detect(self, incoming: IncomingData, live: LibrarySnapshot) -> ConflictInfo:
        """
        Classify incoming books and lists against a live snapshot.

        Args:
            incoming: Validated incoming data set
            live: Snapshot of the live library

        Returns:
            ConflictInfo covering every incoming book and list
        """
        info = ConflictInfo()
        self._detect_lists(incoming.book_lists, live, info)
        self._detect_books(incoming.books, live, info)

        logger.info(
            f"Conflict detection: {len(info.new_books)} new books, "
            f"{len(info.book_conflicts)} book conflicts "
            f"({len(info.identical_books)} identical), "
            f"{len(info.new_lists)} new lists, "
            f"{len(info.list_name_conflicts)} list name conflicts"
        )
        return info

    def _detect_lists(
        self,
        incoming_lists: list[BookList],
        live: LibrarySnapshot,
        info: ConflictInfo,
    ) -> None:
        existing_by_name: dict[str, BookList] = {}
        for book_list in live.book_lists:
            existing_by_name.setdefault(book_list.name, book_list)

        taken = set(existing_by_name) | {bl.name for bl in incoming_lists}

        for book_list in incoming_lists:
            existing = existing_by_name.get(book_list.name)
            if existing is None:
                info.new_lists.append(book_list)
                logger.debug(f"New list: {book_list.name!r}")
                continue

            suggested = suggest_list_name(book_list.name, taken)
            taken.add(suggested)
            info.list_name_conflicts.append(
                ListNameConflict(
                    imported_name=book_list.name,
                    existing_name=existing.name,
                    suggested_name=suggested,
                    imported_list=book_list,
                    existing_list=existing,
                )
            )
            logger.debug(
                f"List name conflict: {book_list.name!r} (suggested {suggested!r})"
            )

    def _detect_books(
        self,
        incoming_books: list[Book],
        live: LibrarySnapshot,
        info: ConflictInfo,
    ) -> None:
        # First book in store insertion order wins for each key
        by_isbn: dict[str, Book] = {}
        by_title_author: dict[tuple[str, str], Book] = {}
        for book in live.books:
            isbn = book.isbn_key()
            if isbn:
                by_isbn.setdefault(isbn, book)
            key = book.title_author_key()
            if key[0]:
                by_title_author.setdefault(key, book)

        for book in incoming_books:
            existing, match_type = self._find_match(book, by_isbn, by_title_author)
            if existing is None or match_type is None:
                info.new_books.append(book)
                logger.debug(f"New book: {book.title!r}")
                continue

            identical = book.content_hash() == existing.content_hash()
            info.book_conflicts.append(
                BookConflict(
                    imported_book=book,
                    existing_book=existing,
                    match_type=match_type,
                    identical=identical,
                )
            )
            logger.debug(
                f"Book {book.title!r} matches {existing.id} by "
                f"{match_type.value}{' (identical)' if identical else ''}"
            )

    @staticmethod
    def _find_match(
        book: Book,
        by_isbn: dict[str, Book],
        by_title_author: dict[tuple[str, str], Book],
    ) -> tuple[Optional[Book], Optional[MatchType]]:
        isbn = book.isbn_key()
        if isbn and isbn in by_isbn:
            return by_isbn[isbn], MatchType.ISBN

        key = book.title_author_key()
        if key[0] and key in by_title_author:
            return by_title_author[key], MatchType.TITLE_AUTHOR

        return None, None
