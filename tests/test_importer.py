"""
Tests for the import orchestrator.

Tests the validate -> preview -> confirm lifecycle, atomic commits,
whole-library replacement and determinism of repeated imports.
"""

import itertools
from datetime import datetime, timezone

import pytest

from bookvault.backup.errors import BackupError, BackupErrorCode
from bookvault.backup.validator import BackupValidator
from bookvault.library import Asset, Book, BookList
from bookvault.merge.importer import (
    ImportOrchestrator,
    ImportState,
    ImportStateError,
)
from bookvault.merge.operations import UpdateBook
from bookvault.merge.resolver import MergeResolver
from bookvault.merge.strategy import ImportStrategy, ListAction
from bookvault.storage.db import LibraryDatabase

STAMP = datetime(2025, 1, 1, tzinfo=timezone.utc)
COVER = Asset.from_bytes(
    b"\xff\xd8\xff cover", media_type="image/jpeg", cached_at=STAMP
)


def make_db() -> LibraryDatabase:
    db = LibraryDatabase(":memory:")
    db.initialize()
    return db


def book(book_id: str, title: str, author: str = "", **kw) -> Book:
    return Book(
        id=book_id, title=title, author=author, created_at=STAMP, updated_at=STAMP, **kw
    )


def source_library() -> LibraryDatabase:
    """Library that exports the artifact under test."""
    db = make_db()
    db.add_asset(COVER)
    db.add_book(book("s1", "Dune", "Frank Herbert", publisher="Ace"))
    db.add_book(book("s2", "Solaris", "Stanislaw Lem", cover_asset_id=COVER.asset_id))
    db.add_book_list(
        BookList(id="sl1", name="Favorites", book_ids=["s2", "s1"], created_at=STAMP)
    )
    db.add_category("Science Fiction")
    return db


def target_library() -> LibraryDatabase:
    """Library receiving the import."""
    db = make_db()
    db.add_book(book("t1", "Dune", "Frank Herbert", notes="Mine"))
    db.add_book(book("t2", "Emma", "Jane Austen"))
    db.add_book_list(
        BookList(
            id="tl1",
            name="Favorites",
            book_ids=["t2"],
            created_at=STAMP,
            updated_at=STAMP,
        )
    )
    return db


def full_artifact() -> bytes:
    return ImportOrchestrator(source_library()).export_full_archive()


def make_orchestrator(db: LibraryDatabase) -> ImportOrchestrator:
    ids = (f"gen{n}" for n in itertools.count(1))
    return ImportOrchestrator(db, resolver=MergeResolver(id_factory=lambda: next(ids)))


class FailingResolver(MergeResolver):
    """Resolver whose batch fails on its last operation."""

    def plan(self, incoming, conflicts, strategy, live):
        result = super().plan(incoming, conflicts, strategy, live)
        ghost = book("ghost", "Nowhere")
        result.operations.append(UpdateBook(book=ghost, previous=ghost))
        return result


class TestBeginImport:
    """Tests for begin_import()."""

    def test_returns_pending_handle(self):
        """A valid artifact yields a validated handle with conflicts."""
        db = target_library()
        orchestrator = make_orchestrator(db)

        pending = orchestrator.begin_import(full_artifact())

        assert pending.state == ImportState.VALIDATED
        assert orchestrator.state == ImportState.VALIDATED
        assert len(pending.dataset.books) == 2
        assert pending.conflicts.book_conflict_for("s1").existing_book.id == "t1"
        assert [c.suggested_name for c in pending.conflicts.list_name_conflicts] == [
            "Favorites (2)"
        ]

    def test_nothing_written(self):
        """Validation and detection do not touch the store."""
        db = target_library()
        before = db.snapshot()
        make_orchestrator(db).begin_import(full_artifact())
        assert db.snapshot() == before

    def test_rejected_artifact(self):
        """Invalid artifacts raise and leave the orchestrator rejected."""
        orchestrator = make_orchestrator(make_db())
        with pytest.raises(BackupError) as exc_info:
            orchestrator.begin_import(b"{broken")
        assert exc_info.value.code == BackupErrorCode.INVALID_JSON
        assert orchestrator.state == ImportState.REJECTED


class TestConfirmImport:
    """Tests for confirm_import()."""

    def test_merge_import(self):
        """The default strategy merges, renames and adds assets."""
        db = target_library()
        orchestrator = make_orchestrator(db)
        pending = orchestrator.begin_import(full_artifact())

        result = orchestrator.confirm_import(pending)

        assert result.success is True
        assert pending.state == ImportState.DONE
        summary = result.summary
        assert (summary.books_added, summary.books_merged) == (1, 1)
        assert summary.lists_created == 1
        assert summary.assets_added == 1
        assert summary.categories_added == 1

        merged = db.get_book("t1")
        assert merged.publisher == "Ace"
        assert merged.notes == "Mine"
        names = [bl.name for bl in db.get_book_lists()]
        assert names == ["Favorites", "Favorites (2)"]
        renamed = db.get_book_lists()[1]
        assert renamed.book_ids == ["s2", "t1"]
        assert db.get_asset(COVER.asset_id) == COVER

    def test_handle_cannot_be_reused(self):
        """A confirmed handle cannot be confirmed again."""
        orchestrator = make_orchestrator(target_library())
        pending = orchestrator.begin_import(full_artifact())
        orchestrator.confirm_import(pending)
        with pytest.raises(ImportStateError):
            orchestrator.confirm_import(pending)

    def test_failed_commit_leaves_store_unchanged(self):
        """A failure mid-batch rolls back everything."""
        db = target_library()
        before = db.snapshot()
        orchestrator = ImportOrchestrator(db, resolver=FailingResolver())
        pending = orchestrator.begin_import(full_artifact())

        result = orchestrator.confirm_import(pending)

        assert result.success is False
        assert result.error == BackupErrorCode.RESTORE_FAILED
        assert "ghost" in result.details
        assert pending.state == ImportState.FAILED
        assert db.snapshot() == before

    def test_conflicts_redetected_at_commit(self):
        """Changes made between begin and confirm are taken into account."""
        db = make_db()
        orchestrator = make_orchestrator(db)
        pending = orchestrator.begin_import(full_artifact())
        assert pending.conflicts.book_conflicts == []

        db.add_book(book("late", "Dune", "Frank Herbert"))
        result = orchestrator.confirm_import(pending)

        assert result.summary.books_merged == 1
        assert db.count_books() == 2

    def test_replace(self):
        """Replace mode swaps the library for the artifact contents."""
        db = target_library()
        orchestrator = make_orchestrator(db)
        pending = orchestrator.begin_import(full_artifact())

        result = orchestrator.confirm_import(pending, replace=True)

        assert result.success is True
        assert sorted(b.id for b in db.get_books()) == ["s1", "s2"]
        assert [bl.name for bl in db.get_book_lists()] == ["Favorites"]
        assert db.get_categories() == ["Science Fiction"]


class TestPreviewAndCancel:
    """Tests for preview_import() and cancel_import()."""

    def test_preview_matches_commit(self):
        """The preview reports what the commit then does."""
        db = target_library()
        orchestrator = make_orchestrator(db)
        pending = orchestrator.begin_import(full_artifact())
        strategy = ImportStrategy(default_list_action=ListAction.MERGE)

        preview = orchestrator.preview_import(pending, strategy)
        assert db.count_books() == 2

        result = orchestrator.confirm_import(pending, strategy)
        assert result.summary == preview

    def test_cancel(self):
        """Cancelled imports write nothing and cannot be confirmed."""
        db = target_library()
        before = db.snapshot()
        orchestrator = make_orchestrator(db)
        pending = orchestrator.begin_import(full_artifact())

        orchestrator.cancel_import(pending)

        assert pending.state == ImportState.CANCELLED
        assert db.snapshot() == before
        with pytest.raises(ImportStateError):
            orchestrator.confirm_import(pending)


class TestImportArtifact:
    """Tests for the one-shot import_artifact()."""

    def test_validation_failure_returned(self):
        """Validation errors come back as a failed result."""
        result = make_orchestrator(make_db()).import_artifact(b"")
        assert result.success is False
        assert result.error == BackupErrorCode.ARCHIVE_MISSING

    def test_reimporting_own_export_changes_nothing(self):
        """Importing a library's own export with list merge is a no-op."""
        db = source_library()
        orchestrator = make_orchestrator(db)
        before = db.snapshot()

        result = orchestrator.import_artifact(
            orchestrator.export_metadata(),
            ImportStrategy(default_list_action=ListAction.MERGE),
        )

        assert result.success is True
        assert result.summary.books == 0
        assert result.summary.books_skipped == 2
        assert result.summary.lists == 0
        assert db.snapshot() == before

    def test_same_import_on_fresh_stores_is_deterministic(self):
        """The same artifact and strategy give the same result twice."""
        artifact = full_artifact()
        strategy = ImportStrategy(default_list_action=ListAction.OVERWRITE)

        outcomes = []
        for _ in range(2):
            db = target_library()
            result = make_orchestrator(db).import_artifact(artifact, strategy)
            outcomes.append((result.summary, db.get_books(), db.get_book_lists()))

        assert outcomes[0] == outcomes[1]


class TestImportedLibraryStaysExportable:
    """Imports never leave the library in a state its backups reject."""

    def test_metadata_import_then_full_export_validates(self):
        """Covers without a payload are dropped, so full exports restore."""
        artifact = ImportOrchestrator(source_library()).export_metadata()
        db = make_db()
        orchestrator = make_orchestrator(db)

        result = orchestrator.import_artifact(artifact)

        assert result.success is True
        assert db.get_book("s2").cover_asset_id is None
        dataset = BackupValidator().validate(orchestrator.export_full_archive())
        assert len(dataset.books) == 2

    def test_full_import_keeps_covers(self):
        """Covers that arrive with their payload are kept."""
        db = make_db()
        make_orchestrator(db).import_artifact(full_artifact())
        assert db.get_book("s2").cover_asset_id == COVER.asset_id

    def test_repeated_isbn_in_one_import_is_stored_once(self):
        """Two new books with the same normalized isbn become one record."""
        source = make_db()
        source.add_book(book("s1", "Dune", "Frank Herbert", isbn="9780441013593"))
        source.add_book(
            book("s2", "Dune (Ace)", isbn="978-0-441-01359-3", publisher="Ace")
        )
        artifact = ImportOrchestrator(source).export_metadata()
        db = make_db()

        result = make_orchestrator(db).import_artifact(artifact)

        assert (result.summary.books_added, result.summary.books_merged) == (1, 1)
        [stored] = db.get_books()
        assert stored.isbn_key() == "9780441013593"
        assert (stored.title, stored.publisher) == ("Dune", "Ace")


class TestSupersededImports:
    """Tests for handles replaced by a newer begin_import()."""

    def test_new_import_cancels_pending_handle(self):
        """Only the most recent handle can be confirmed."""
        db = target_library()
        orchestrator = make_orchestrator(db)
        first = orchestrator.begin_import(full_artifact())
        second = orchestrator.begin_import(full_artifact())

        assert first.state == ImportState.CANCELLED
        with pytest.raises(ImportStateError):
            orchestrator.confirm_import(first)
        assert orchestrator.confirm_import(second).success is True

    def test_rejected_artifact_keeps_pending_handle(self):
        """A rejected artifact does not cancel the open import."""
        orchestrator = make_orchestrator(target_library())
        pending = orchestrator.begin_import(full_artifact())
        with pytest.raises(BackupError):
            orchestrator.begin_import(b"{broken")
        assert orchestrator.confirm_import(pending).success is True
