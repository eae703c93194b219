"""
Book list data model.

A book list is a named, ordered collection of references to books. Lists
never own the books they reference; removing a list leaves its books in
the library.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from bookvault.library.book import format_timestamp, parse_timestamp, utc_now


@dataclass
class BookList:
    """
    Named, ordered list of book ids.

    Attributes:
        id: Opaque unique identifier
        name: Display name, unique among lists (case-sensitive)
        book_ids: Ordered membership (ids of Books)
        description: Optional description
        created_at: When the list was created
        updated_at: When the list was last modified
    """

    id: str
    name: str
    book_ids: list[str] = field(default_factory=list)
    description: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BookList:
        """
        Create a BookList from its backup document representation.

        Raises:
            ValueError: If a field has the wrong type
        """
        list_id = data.get("id")
        name = data.get("name")
        book_ids = data.get("bookIds", [])
        description = data.get("description") or ""

        if not isinstance(list_id, str) or not list_id:
            raise ValueError("Book list 'id' must be a non-empty string")
        if not isinstance(name, str) or not name:
            raise ValueError(f"Book list {list_id}: 'name' must be a non-empty string")
        if not isinstance(book_ids, list) or not all(
            isinstance(b, str) for b in book_ids
        ):
            raise ValueError(f"Book list {list_id}: 'bookIds' must be a list of ids")
        if not isinstance(description, str):
            raise ValueError(f"Book list {list_id}: 'description' must be a string")

        created_at = parse_timestamp(data.get("createdAt"))
        return cls(
            id=list_id,
            name=name,
            book_ids=list(book_ids),
            description=description,
            created_at=created_at,
            updated_at=parse_timestamp(data.get("updatedAt", data.get("createdAt"))),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the list to its backup document representation."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "bookIds": list(self.book_ids),
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"BookList(id={self.id!r}, name={self.name!r}, "
            f"books={len(self.book_ids)})"
        )
