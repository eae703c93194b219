"""
Tests for conflict detection.

Tests ConflictDetector matching of books (ISBN, then title and author)
and list name conflicts with unique name suggestions.
"""

from datetime import datetime, timezone

from bookvault.library import Book, BookList, LibrarySnapshot
from bookvault.merge.conflict import (
    ConflictDetector,
    MatchType,
    suggest_list_name,
)

STAMP = datetime(2025, 1, 1, tzinfo=timezone.utc)


def book(book_id: str, title: str, author: str = "", isbn: str = "", **kw) -> Book:
    return Book(
        id=book_id,
        title=title,
        author=author,
        isbn=isbn,
        created_at=STAMP,
        updated_at=STAMP,
        **kw,
    )


def detect(incoming_books=(), incoming_lists=(), live_books=(), live_lists=()):
    incoming = LibrarySnapshot(
        books=list(incoming_books), book_lists=list(incoming_lists)
    )
    live = LibrarySnapshot(books=list(live_books), book_lists=list(live_lists))
    return ConflictDetector().detect(incoming, live)


class TestSuggestListName:
    """Tests for suggest_list_name()."""

    def test_first_suggestion(self):
        """The first suggestion is '(2)'."""
        assert suggest_list_name("Favorites", {"Favorites"}) == "Favorites (2)"

    def test_skips_taken_names(self):
        """Taken suggestions are skipped."""
        taken = {"Favorites", "Favorites (2)", "Favorites (3)"}
        assert suggest_list_name("Favorites", taken) == "Favorites (4)"


class TestBookMatching:
    """Tests for book conflict detection."""

    def test_new_book(self):
        """Books without a match are new."""
        info = detect(
            incoming_books=[book("i1", "Emma", "Jane Austen")],
            live_books=[book("e1", "Dune", "Frank Herbert")],
        )
        assert [b.id for b in info.new_books] == ["i1"]
        assert info.book_conflicts == []
        assert not info.has_conflicts

    def test_isbn_match_across_forms(self):
        """ISBN-10 and ISBN-13 of the same book match."""
        info = detect(
            incoming_books=[book("i1", "Dune (Anniversary)", isbn="978-0-441-01359-3")],
            live_books=[book("e1", "Dune", isbn="0441013597")],
        )
        [conflict] = info.book_conflicts
        assert conflict.match_type == MatchType.ISBN
        assert conflict.existing_book.id == "e1"

    def test_isbn_beats_title_author(self):
        """An ISBN match wins over an earlier title/author match."""
        info = detect(
            incoming_books=[book("i1", "Dune", "Frank Herbert", isbn="0441013597")],
            live_books=[
                book("e1", "Dune", "Frank Herbert"),
                book("e2", "Dune (Ace)", isbn="9780441013593"),
            ],
        )
        [conflict] = info.book_conflicts
        assert conflict.existing_book.id == "e2"
        assert conflict.match_type == MatchType.ISBN

    def test_title_author_case_and_whitespace_insensitive(self):
        """Title/author matching ignores case and extra whitespace."""
        info = detect(
            incoming_books=[book("i1", "  DUNE ", "frank   herbert")],
            live_books=[book("e1", "Dune", "Frank Herbert")],
        )
        [conflict] = info.book_conflicts
        assert conflict.match_type == MatchType.TITLE_AUTHOR

    def test_match_type_values(self):
        """Match types use their wire names."""
        assert [m.value for m in MatchType] == ["isbn", "title-author"]

    def test_empty_title_never_matches(self):
        """Books with empty titles do not match on title/author."""
        info = detect(
            incoming_books=[book("i1", "")],
            live_books=[book("e1", "")],
        )
        assert [b.id for b in info.new_books] == ["i1"]

    def test_first_existing_book_wins(self):
        """With several candidates the first in store order is chosen."""
        info = detect(
            incoming_books=[book("i1", "Dune", "Frank Herbert")],
            live_books=[
                book("e1", "Dune", "Frank Herbert"),
                book("e2", "Dune", "Frank Herbert"),
            ],
        )
        assert info.book_conflicts[0].existing_book.id == "e1"

    def test_identical_flag(self):
        """Identical content is flagged regardless of ids and timestamps."""
        existing = book("e1", "Dune", "Frank Herbert", notes="Great")
        same = Book(
            id="i1",
            title="Dune",
            author="Frank Herbert",
            notes="Great",
            created_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
        )
        different = book("i2", "Dune", "Frank Herbert", notes="Meh")
        info = detect(incoming_books=[same, different], live_books=[existing])

        assert info.book_conflict_for("i1").identical is True
        assert info.book_conflict_for("i2").identical is False
        assert [c.imported_book.id for c in info.identical_books] == ["i1"]

    def test_inputs_not_modified(self):
        """Detection leaves both snapshots unchanged."""
        incoming = LibrarySnapshot(books=[book("i1", "Dune")])
        live = LibrarySnapshot(books=[book("e1", "Dune")])
        ConflictDetector().detect(incoming, live)
        assert [b.id for b in incoming.books] == ["i1"]
        assert [b.id for b in live.books] == ["e1"]


class TestListConflicts:
    """Tests for list name conflict detection."""

    def test_new_list(self):
        """Lists with unused names are new."""
        info = detect(
            incoming_lists=[BookList(id="l1", name="Queue")],
            live_lists=[BookList(id="x1", name="Favorites")],
        )
        assert [bl.id for bl in info.new_lists] == ["l1"]

    def test_name_conflict_is_case_sensitive(self):
        """Only exact name matches conflict."""
        info = detect(
            incoming_lists=[BookList(id="l1", name="favorites")],
            live_lists=[BookList(id="x1", name="Favorites")],
        )
        assert info.list_name_conflicts == []

    def test_conflict_suggests_unique_name(self):
        """A conflicting list gets a suggestion not used anywhere."""
        info = detect(
            incoming_lists=[
                BookList(id="l1", name="Favorites"),
                BookList(id="l2", name="Favorites (2)"),
            ],
            live_lists=[
                BookList(id="x1", name="Favorites"),
                BookList(id="x2", name="Favorites (2)"),
            ],
        )
        suggestions = {
            c.imported_list.id: c.suggested_name for c in info.list_name_conflicts
        }
        assert suggestions == {"l1": "Favorites (3)", "l2": "Favorites (2) (2)"}

    def test_repeated_incoming_names_get_distinct_suggestions(self):
        """Two incoming lists with the same name get different suggestions."""
        info = detect(
            incoming_lists=[
                BookList(id="l1", name="Favorites"),
                BookList(id="l2", name="Favorites"),
            ],
            live_lists=[BookList(id="x1", name="Favorites")],
        )
        names = [c.suggested_name for c in info.list_name_conflicts]
        assert names == ["Favorites (2)", "Favorites (3)"]
        assert info.list_conflict_for("l2").existing_list.id == "x1"
