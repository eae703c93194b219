"""
Store operations produced by the merge resolver.

The resolver never writes to the store; it returns a list of these
operations, which the store applies as one all-or-nothing transaction.
StoreOperation is a closed union: the store rejects anything else.
"""

from dataclasses import dataclass
from typing import Union

from bookvault.library.asset import Asset
from bookvault.library.book import Book
from bookvault.library.book_list import BookList


@dataclass(frozen=True)
class InsertBook:
    """Insert a new book record."""

    book: Book


@dataclass(frozen=True)
class UpdateBook:
    """Replace the stored fields of an existing book (matched by id)."""

    book: Book
    previous: Book


@dataclass(frozen=True)
class InsertBookList:
    """Insert a new book list with its membership."""

    book_list: BookList


@dataclass(frozen=True)
class ReplaceListMembership:
    """Replace the membership of an existing list."""

    list_id: str
    book_ids: tuple[str, ...]


@dataclass(frozen=True)
class AppendListMembership:
    """Append book ids to the end of an existing list."""

    list_id: str
    book_ids: tuple[str, ...]


@dataclass(frozen=True)
class InsertAsset:
    """Store an asset payload (no-op when the content id already exists)."""

    asset: Asset


@dataclass(frozen=True)
class AddCategory:
    """Add a name to the category vocabulary."""

    name: str


@dataclass(frozen=True)
class ClearLibrary:
    """Remove all books, lists, categories and assets."""


StoreOperation = Union[
    InsertBook,
    UpdateBook,
    InsertBookList,
    ReplaceListMembership,
    AppendListMembership,
    InsertAsset,
    AddCategory,
    ClearLibrary,
]

STORE_OPERATION_TYPES = (
    InsertBook,
    UpdateBook,
    InsertBookList,
    ReplaceListMembership,
    AppendListMembership,
    InsertAsset,
    AddCategory,
    ClearLibrary,
)
