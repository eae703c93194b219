"""
Merge resolver.

Turns detected conflicts plus an ImportStrategy into the list of store
operations that an import will apply. The resolver is pure: it reads its
arguments and returns operations, and never touches the store.
"""

import dataclasses
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from bookvault.library.book import COMMENT_FIELDS, MERGEABLE_FIELDS, Book
from bookvault.library.book_list import BookList
from bookvault.library.snapshot import LibrarySnapshot
from bookvault.merge.conflict import ConflictInfo, IncomingData, suggest_list_name
from bookvault.merge.operations import (
    AddCategory,
    AppendListMembership,
    ClearLibrary,
    InsertAsset,
    InsertBook,
    InsertBookList,
    ReplaceListMembership,
    StoreOperation,
    UpdateBook,
)
from bookvault.merge.strategy import (
    BookAction,
    CommentMerge,
    FieldMerge,
    ImportStrategy,
    ListAction,
)

logger = logging.getLogger(__name__)

# Separator between the two sides of a combined comment
COMMENT_SEPARATOR = "\n\n"


def _new_id() -> str:
    return uuid.uuid4().hex


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def merge_field(existing: Any, imported: Any, mode: FieldMerge) -> Any:
    """
    Combine one structured field of two books.

    Args:
        existing: Value on the live book
        imported: Value on the incoming book
        mode: Field merge mode

    Returns:
        The chosen value
    """
    if mode == FieldMerge.PREFER_LOCAL:
        return existing
    if mode == FieldMerge.PREFER_IMPORTED:
        return imported
    if mode == FieldMerge.NON_EMPTY_WINS:
        return imported if _is_empty(existing) else existing
    raise ValueError(f"Unknown field merge mode: {mode!r}")


def merge_comment(existing: str, imported: str, mode: CommentMerge) -> str:
    """
    Combine a free-text field of two books.

    With CommentMerge.BOTH the existing text comes first, separated from
    the imported text by a blank line. An empty side is dropped, and
    imported text already present as a paragraph of the existing text is
    not added again.
    """
    if mode == CommentMerge.KEEP_LOCAL:
        return existing
    if mode == CommentMerge.KEEP_IMPORTED:
        return imported
    if mode != CommentMerge.BOTH:
        raise ValueError(f"Unknown comment merge mode: {mode!r}")

    if not imported.strip():
        return existing
    if not existing.strip():
        return imported
    paragraphs = [p.strip() for p in existing.split(COMMENT_SEPARATOR)]
    if imported.strip() in paragraphs:
        return existing
    return f"{existing}{COMMENT_SEPARATOR}{imported}"


def _same_content(a: Book, b: Book) -> bool:
    """Compare two books on every field except updated_at."""
    left = a.to_dict()
    right = b.to_dict()
    left.pop("updatedAt")
    right.pop("updatedAt")
    return left == right


@dataclass
class ResolutionPlan:
    """
    Operations for an import together with per-entity outcome counts.

    Attributes:
        operations: Store operations in application order
        books_added: Books inserted (new or duplicated)
        books_merged: Records changed by a merge (existing or new in this import)
        books_skipped: Incoming books that caused no write
        lists_created: Lists inserted (new or renamed)
        lists_updated: Existing lists whose membership changed
        lists_skipped: Incoming lists that caused no write
        assets_added: Asset payloads inserted
        categories_added: Category names added to the vocabulary
    """

    operations: list[StoreOperation] = field(default_factory=list)
    books_added: int = 0
    books_merged: int = 0
    books_skipped: int = 0
    lists_created: int = 0
    lists_updated: int = 0
    lists_skipped: int = 0
    assets_added: int = 0
    categories_added: int = 0


class _PlanBuilder:
    """Mutable state for one resolve() call."""

    def __init__(self, live: LibrarySnapshot, id_factory: Callable[[], str]):
        self.live = live
        self.id_factory = id_factory
        self.plan = ResolutionPlan()
        self.used_book_ids = live.book_ids()
        self.used_list_ids = live.list_ids()
        self.used_list_names = live.list_names()
        self.reserved_list_names: set[str] = set()
        self.emitted_assets: set[str] = set()
        # Incoming book id -> id of the record it ended up as
        self.id_map: dict[str, str] = {}
        # Normalized isbn -> index of the InsertBook that claimed it
        self.inserted_isbns: dict[str, int] = {}

    def claim_id(self, candidate: str, used: set[str]) -> str:
        new_id = candidate
        while new_id in used:
            new_id = self.id_factory()
        used.add(new_id)
        return new_id

    def remap_members(self, book_list: BookList) -> list[str]:
        members: list[str] = []
        for book_id in book_list.book_ids:
            target = self.id_map.get(book_id)
            if target is None:
                logger.warning(
                    f"List {book_list.name!r} references unknown book {book_id}; "
                    "dropping the reference"
                )
                continue
            if target not in members:
                members.append(target)
        return members


class MergeResolver:
    """
    Computes store operations for an import.

    Usage:
        resolver = MergeResolver()
        operations = resolver.resolve(dataset, conflicts, strategy, snapshot)
        database.apply_operations(operations)
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None):
        """
        Initialize the resolver.

        Args:
            id_factory: Generates fresh ids for records whose id is taken
                (defaults to uuid4 hex)
        """
        self.id_factory = id_factory or _new_id

    def resolve(
        self,
        incoming: IncomingData,
        conflicts: ConflictInfo,
        strategy: ImportStrategy,
        live: LibrarySnapshot,
    ) -> list[StoreOperation]:
        """
        Compute the operations that import incoming into the live library.

        Args:
            incoming: Validated incoming data set
            conflicts: Detector output for incoming against live
            strategy: How to resolve each conflict
            live: Snapshot the conflicts were detected against

        Returns:
            Store operations, to be applied as one transaction
        """
        return self.plan(incoming, conflicts, strategy, live).operations

    def plan(
        self,
        incoming: IncomingData,
        conflicts: ConflictInfo,
        strategy: ImportStrategy,
        live: LibrarySnapshot,
    ) -> ResolutionPlan:
        """Like resolve(), but also report per-entity outcome counts."""
        builder = _PlanBuilder(live, self.id_factory)

        self._resolve_books(builder, incoming, conflicts, strategy)
        self._resolve_lists(builder, incoming, conflicts, strategy)
        self._add_categories(builder, incoming.categories)

        plan = builder.plan
        logger.info(
            f"Resolved import: {plan.books_added} books added, "
            f"{plan.books_merged} merged, {plan.books_skipped} skipped; "
            f"{plan.lists_created} lists created, {plan.lists_updated} updated, "
            f"{plan.lists_skipped} skipped; {len(plan.operations)} operations"
        )
        return plan

    def resolve_replace(self, incoming: IncomingData) -> list[StoreOperation]:
        """
        Compute operations that replace the whole library with incoming.

        Returns:
            ClearLibrary followed by inserts for every incoming entity
        """
        return self.plan_replace(incoming).operations

    def plan_replace(self, incoming: IncomingData) -> ResolutionPlan:
        """Like resolve_replace(), but also report outcome counts."""
        builder = _PlanBuilder(LibrarySnapshot(), self.id_factory)
        builder.plan.operations.append(ClearLibrary())

        for book in incoming.books:
            self._insert_book(builder, book, incoming)
        for book_list in incoming.book_lists:
            self._insert_list(builder, book_list, book_list.name)
        self._add_categories(builder, incoming.categories)

        logger.info(
            f"Resolved replace: {builder.plan.books_added} books, "
            f"{builder.plan.lists_created} lists"
        )
        return builder.plan

    def merge_books(
        self, existing: Book, imported: Book, strategy: ImportStrategy
    ) -> Book:
        """
        Combine an incoming book into an existing one.

        The result keeps the existing id and created_at; updated_at is the
        later of the two books.

        Args:
            existing: Live book (or the result of an earlier merge onto it)
            imported: Incoming book
            strategy: Supplies the per-field and comment merge modes

        Returns:
            New Book with the combined fields
        """
        changes: dict[str, Any] = {}
        for name in MERGEABLE_FIELDS:
            mode = strategy.field_merge_for(imported.id, name)
            changes[name] = merge_field(
                getattr(existing, name), getattr(imported, name), mode
            )

        comment_mode = strategy.comment_merge_for(imported.id)
        for name in COMMENT_FIELDS:
            changes[name] = merge_comment(
                getattr(existing, name), getattr(imported, name), comment_mode
            )

        for name in ("categories", "tags", "source"):
            changes[name] = list(changes[name])

        changes["updated_at"] = max(existing.updated_at, imported.updated_at)
        return dataclasses.replace(existing, **changes)

    # =========================================================================
    # Books
    # =========================================================================

    def _resolve_books(
        self,
        builder: _PlanBuilder,
        incoming: IncomingData,
        conflicts: ConflictInfo,
        strategy: ImportStrategy,
    ) -> None:
        conflict_by_book = {c.imported_book.id: c for c in conflicts.book_conflicts}
        # Existing id -> accumulated merge result
        merged: dict[str, Book] = {}
        originals: dict[str, Book] = {}

        for book in incoming.books:
            conflict = conflict_by_book.get(book.id)
            if conflict is None:
                earlier = builder.inserted_isbns.get(book.isbn_key())
                if earlier is None:
                    self._insert_book(builder, book, incoming)
                else:
                    self._fold_into_insert(builder, earlier, book, incoming, strategy)
                continue

            existing = conflict.existing_book
            if conflict.identical:
                builder.id_map[book.id] = existing.id
                builder.plan.books_skipped += 1
                continue

            action = strategy.book_action_for(book.id)
            if action == BookAction.SKIP:
                builder.id_map[book.id] = existing.id
                builder.plan.books_skipped += 1
            elif action == BookAction.DUPLICATE:
                self._insert_book(builder, book, incoming)
            elif action == BookAction.MERGE:
                originals.setdefault(existing.id, existing)
                base = merged.get(existing.id, existing)
                merged[existing.id] = self.merge_books(base, book, strategy)
                builder.id_map[book.id] = existing.id
            else:
                raise ValueError(f"Unknown book action: {action!r}")

        for existing_id, result in merged.items():
            original = originals[existing_id]
            result = self._checked_cover(builder, result, incoming, previous=original)
            if _same_content(result, original):
                builder.plan.books_skipped += 1
                continue
            builder.plan.operations.append(UpdateBook(book=result, previous=original))
            builder.plan.books_merged += 1
            self._add_cover_asset(builder, result, incoming)

    def _insert_book(
        self, builder: _PlanBuilder, book: Book, incoming: IncomingData
    ) -> None:
        new_id = builder.claim_id(book.id, builder.used_book_ids)
        builder.id_map[book.id] = new_id
        if new_id != book.id:
            logger.debug(f"Book id {book.id} is taken; inserting as {new_id}")
            book = dataclasses.replace(book, id=new_id)
        book = self._checked_cover(builder, book, incoming)
        isbn = book.isbn_key()
        if isbn:
            builder.inserted_isbns.setdefault(isbn, len(builder.plan.operations))
        builder.plan.operations.append(InsertBook(book=book))
        builder.plan.books_added += 1
        self._add_cover_asset(builder, book, incoming)

    def _fold_into_insert(
        self,
        builder: _PlanBuilder,
        index: int,
        book: Book,
        incoming: IncomingData,
        strategy: ImportStrategy,
    ) -> None:
        """
        Resolve a new book whose isbn an earlier new book of this import has.

        The earlier insert plays the existing book, so the isbn stays unique
        unless the book action is DUPLICATE.
        """
        earlier = builder.plan.operations[index].book  # type: ignore[union-attr]

        if book.content_hash() == earlier.content_hash():
            builder.id_map[book.id] = earlier.id
            builder.plan.books_skipped += 1
            return

        action = strategy.book_action_for(book.id)
        if action == BookAction.SKIP:
            builder.id_map[book.id] = earlier.id
            builder.plan.books_skipped += 1
        elif action == BookAction.DUPLICATE:
            self._insert_book(builder, book, incoming)
        elif action == BookAction.MERGE:
            result = self._checked_cover(
                builder, self.merge_books(earlier, book, strategy), incoming
            )
            builder.id_map[book.id] = earlier.id
            if _same_content(result, earlier):
                builder.plan.books_skipped += 1
                return
            builder.plan.operations[index] = InsertBook(book=result)
            builder.plan.books_merged += 1
            self._add_cover_asset(builder, result, incoming)
        else:
            raise ValueError(f"Unknown book action: {action!r}")
        logger.debug(
            f"Book {book.title!r} shares isbn {book.isbn_key()} with new book "
            f"{earlier.id}: {action.value}"
        )

    @staticmethod
    def _checked_cover(
        builder: _PlanBuilder,
        book: Book,
        incoming: IncomingData,
        previous: Optional[Book] = None,
    ) -> Book:
        """Drop a cover reference to an asset that neither side holds."""
        asset_id = book.cover_asset_id
        if not asset_id or asset_id in incoming.assets:
            return book
        if asset_id in builder.live.assets:
            return book
        if previous is not None and previous.cover_asset_id == asset_id:
            return book
        logger.warning(
            f"Book {book.title!r} references cover asset {asset_id} that is "
            "not in the import; dropping the reference"
        )
        return dataclasses.replace(book, cover_asset_id=None)

    @staticmethod
    def _add_cover_asset(
        builder: _PlanBuilder, book: Book, incoming: IncomingData
    ) -> None:
        asset_id = book.cover_asset_id
        if not asset_id or asset_id in builder.emitted_assets:
            return
        if asset_id in builder.live.assets:
            return
        asset = incoming.assets.get(asset_id)
        if asset is None:
            return
        builder.emitted_assets.add(asset_id)
        builder.plan.operations.append(InsertAsset(asset=asset))
        builder.plan.assets_added += 1

    # =========================================================================
    # Lists and categories
    # =========================================================================

    def _resolve_lists(
        self,
        builder: _PlanBuilder,
        incoming: IncomingData,
        conflicts: ConflictInfo,
        strategy: ImportStrategy,
    ) -> None:
        conflict_by_list = {
            c.imported_list.id: c for c in conflicts.list_name_conflicts
        }
        # Suggested names are reserved up front so new lists never take them
        builder.reserved_list_names = {
            c.suggested_name for c in conflicts.list_name_conflicts
        }

        for book_list in incoming.book_lists:
            conflict = conflict_by_list.get(book_list.id)
            if conflict is None:
                self._insert_list(builder, book_list, book_list.name)
                continue

            action = strategy.list_action_for(book_list.name)
            existing = conflict.existing_list
            if action == ListAction.RENAME:
                self._insert_list(
                    builder, book_list, conflict.suggested_name, suggested=True
                )
            elif action == ListAction.SKIP:
                builder.plan.lists_skipped += 1
            elif action == ListAction.OVERWRITE:
                members = builder.remap_members(book_list)
                if members == existing.book_ids:
                    builder.plan.lists_skipped += 1
                    continue
                builder.plan.operations.append(
                    ReplaceListMembership(list_id=existing.id, book_ids=tuple(members))
                )
                builder.plan.lists_updated += 1
            elif action == ListAction.MERGE:
                missing = [
                    book_id
                    for book_id in builder.remap_members(book_list)
                    if book_id not in existing.book_ids
                ]
                if not missing:
                    builder.plan.lists_skipped += 1
                    continue
                builder.plan.operations.append(
                    AppendListMembership(list_id=existing.id, book_ids=tuple(missing))
                )
                builder.plan.lists_updated += 1
            else:
                raise ValueError(f"Unknown list action: {action!r}")

    def _insert_list(
        self,
        builder: _PlanBuilder,
        book_list: BookList,
        name: str,
        suggested: bool = False,
    ) -> None:
        clashes = name in builder.used_list_names or (
            not suggested and name in builder.reserved_list_names
        )
        if clashes:
            name = suggest_list_name(
                book_list.name, builder.used_list_names | builder.reserved_list_names
            )
        builder.used_list_names.add(name)

        new_id = builder.claim_id(book_list.id, builder.used_list_ids)
        inserted = dataclasses.replace(
            book_list,
            id=new_id,
            name=name,
            book_ids=builder.remap_members(book_list),
        )
        builder.plan.operations.append(InsertBookList(book_list=inserted))
        builder.plan.lists_created += 1

    @staticmethod
    def _add_categories(builder: _PlanBuilder, categories: list[str]) -> None:
        known = set(builder.live.categories)
        for name in categories:
            if name in known:
                continue
            known.add(name)
            builder.plan.operations.append(AddCategory(name=name))
            builder.plan.categories_added += 1
