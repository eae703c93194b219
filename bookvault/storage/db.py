"""
SQLite database module for the live library.

Provides persistent storage for books, book lists, the category vocabulary
and cached cover assets, plus all-or-nothing application of the operation
batches produced by the merge resolver.
"""

import json
import sqlite3
import threading
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from typing import Any, Optional

from bookvault.library.asset import Asset
from bookvault.library.book import (
    Book,
    ReadingStatus,
    format_timestamp,
    parse_timestamp,
)
from bookvault.library.book_list import BookList
from bookvault.library.snapshot import LibrarySnapshot
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

# SQL Schema for the library tables
SCHEMA = """
CREATE TABLE IF NOT EXISTS books (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    isbn TEXT NOT NULL DEFAULT '',
    title TEXT NOT NULL,
    author TEXT NOT NULL DEFAULT '',
    publisher TEXT NOT NULL DEFAULT '',
    publish_date TEXT NOT NULL DEFAULT '',
    cover TEXT NOT NULL DEFAULT '',
    cover_asset_id TEXT,
    categories TEXT NOT NULL DEFAULT '[]',
    tags TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'want',
    recommendation TEXT NOT NULL DEFAULT '',
    notes TEXT NOT NULL DEFAULT '',
    source TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(id)
);

CREATE INDEX IF NOT EXISTS idx_books_isbn ON books(isbn);

CREATE TABLE IF NOT EXISTS book_lists (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(id),
    UNIQUE(name)
);

CREATE TABLE IF NOT EXISTS book_list_members (
    list_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    book_id TEXT NOT NULL,
    PRIMARY KEY(list_id, position)
);

CREATE INDEX IF NOT EXISTS idx_list_members_list ON book_list_members(list_id);

CREATE TABLE IF NOT EXISTS categories (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    UNIQUE(name)
);

CREATE TABLE IF NOT EXISTS assets (
    asset_id TEXT PRIMARY KEY,
    data BLOB NOT NULL,
    media_type TEXT NOT NULL DEFAULT 'application/octet-stream',
    source_url TEXT NOT NULL DEFAULT '',
    cached_at TEXT NOT NULL
);
"""


class LibraryDatabase:
    """
    SQLite database manager for the live library.

    Provides methods for:
    - Reading and writing books, book lists, categories and assets
    - Taking consistent snapshots of the whole library
    - Applying resolver operation batches atomically

    Concurrency: a single re-entrant lock serializes writers. Exports take
    their snapshot under exclusive(), so they wait for an in-flight commit
    instead of observing a half-applied import.

    Usage:
        db = LibraryDatabase('/path/to/library.db')
        db.initialize()

        # Or use in-memory for testing:
        db = LibraryDatabase(':memory:')
        db.initialize()
    """

    def __init__(self, db_path: str):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file, or ':memory:' for in-memory database
        """
        self.db_path = db_path
        self._shared_connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection.

        For in-memory databases, returns a shared connection to ensure
        schema persists across operations. For file databases, creates
        a new connection each time.
        """
        if self.db_path == ":memory:":
            if self._shared_connection is None:
                self._shared_connection = sqlite3.connect(
                    ":memory:", check_same_thread=False
                )
                self._shared_connection.row_factory = sqlite3.Row
            return self._shared_connection
        else:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            return conn

    @contextmanager
    def exclusive(self) -> Generator[None, None, None]:
        """
        Hold the store's writer lock for a multi-step unit of work.

        The lock is re-entrant, so methods of this class can be called
        while it is held.
        """
        with self._lock:
            yield

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success and rolls back on any exception.

        Yields:
            sqlite3.Connection: Database connection
        """
        with self._lock:
            conn = self._get_connection()
            is_shared = self.db_path == ":memory:"
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                if not is_shared:
                    conn.close()

    def initialize(self) -> None:
        """Create the library tables if they don't exist."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

    # =========================================================================
    # Row conversion
    # =========================================================================

    @staticmethod
    def _book_from_row(row: sqlite3.Row) -> Book:
        return Book(
            id=row["id"],
            isbn=row["isbn"],
            title=row["title"],
            author=row["author"],
            publisher=row["publisher"],
            publish_date=row["publish_date"],
            cover=row["cover"],
            cover_asset_id=row["cover_asset_id"],
            categories=json.loads(row["categories"]),
            tags=json.loads(row["tags"]),
            status=ReadingStatus(row["status"]),
            recommendation=row["recommendation"],
            notes=row["notes"],
            source=json.loads(row["source"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    @staticmethod
    def _book_params(book: Book) -> dict[str, Any]:
        return {
            "id": book.id,
            "isbn": book.isbn,
            "title": book.title,
            "author": book.author,
            "publisher": book.publisher,
            "publish_date": book.publish_date,
            "cover": book.cover,
            "cover_asset_id": book.cover_asset_id,
            "categories": json.dumps(book.categories, ensure_ascii=False),
            "tags": json.dumps(book.tags, ensure_ascii=False),
            "status": book.status.value,
            "recommendation": book.recommendation,
            "notes": book.notes,
            "source": json.dumps(book.source, ensure_ascii=False),
            "created_at": format_timestamp(book.created_at),
            "updated_at": format_timestamp(book.updated_at),
        }

    # =========================================================================
    # Books
    # =========================================================================

    def _insert_book(self, conn: sqlite3.Connection, book: Book) -> None:
        conn.execute(
            """
            INSERT INTO books (
                id, isbn, title, author, publisher, publish_date, cover,
                cover_asset_id, categories, tags, status, recommendation,
                notes, source, created_at, updated_at
            ) VALUES (
                :id, :isbn, :title, :author, :publisher, :publish_date, :cover,
                :cover_asset_id, :categories, :tags, :status, :recommendation,
                :notes, :source, :created_at, :updated_at
            )
            """,
            self._book_params(book),
        )

    def _update_book(self, conn: sqlite3.Connection, book: Book) -> None:
        cursor = conn.execute(
            """
            UPDATE books SET
                isbn = :isbn, title = :title, author = :author,
                publisher = :publisher, publish_date = :publish_date,
                cover = :cover, cover_asset_id = :cover_asset_id,
                categories = :categories, tags = :tags, status = :status,
                recommendation = :recommendation, notes = :notes,
                source = :source, created_at = :created_at,
                updated_at = :updated_at
            WHERE id = :id
            """,
            self._book_params(book),
        )
        if cursor.rowcount == 0:
            raise LookupError(f"Book not found: {book.id}")

    def add_book(self, book: Book) -> None:
        """
        Insert a book.

        Raises:
            sqlite3.IntegrityError: If a book with the same id exists
        """
        with self.connection() as conn:
            self._insert_book(conn, book)

    def get_book(self, book_id: str) -> Optional[Book]:
        """Get a book by id, or None if not found."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM books WHERE id = ?", (book_id,)
            ).fetchone()
            return self._book_from_row(row) if row else None

    def get_books(self) -> list[Book]:
        """Get all books in insertion order."""
        with self.connection() as conn:
            return self._read_books(conn)

    def _read_books(self, conn: sqlite3.Connection) -> list[Book]:
        rows = conn.execute("SELECT * FROM books ORDER BY seq").fetchall()
        return [self._book_from_row(row) for row in rows]

    def count_books(self) -> int:
        """Get the number of books."""
        with self.connection() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM books").fetchone()[0])

    # =========================================================================
    # Book lists
    # =========================================================================

    def _insert_book_list(self, conn: sqlite3.Connection, book_list: BookList) -> None:
        conn.execute(
            """
            INSERT INTO book_lists (id, name, description, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                book_list.id,
                book_list.name,
                book_list.description,
                format_timestamp(book_list.created_at),
                format_timestamp(book_list.updated_at),
            ),
        )
        self._write_members(conn, book_list.id, book_list.book_ids)

    def _write_members(
        self, conn: sqlite3.Connection, list_id: str, book_ids: Iterable[str]
    ) -> None:
        conn.execute("DELETE FROM book_list_members WHERE list_id = ?", (list_id,))
        conn.executemany(
            "INSERT INTO book_list_members (list_id, position, book_id) "
            "VALUES (?, ?, ?)",
            [(list_id, position, book_id) for position, book_id in enumerate(book_ids)],
        )

    def _read_members(self, conn: sqlite3.Connection, list_id: str) -> list[str]:
        rows = conn.execute(
            "SELECT book_id FROM book_list_members WHERE list_id = ? "
            "ORDER BY position",
            (list_id,),
        ).fetchall()
        return [row["book_id"] for row in rows]

    def _require_list(self, conn: sqlite3.Connection, list_id: str) -> None:
        row = conn.execute(
            "SELECT 1 FROM book_lists WHERE id = ?", (list_id,)
        ).fetchone()
        if row is None:
            raise LookupError(f"Book list not found: {list_id}")

    def add_book_list(self, book_list: BookList) -> None:
        """
        Insert a book list with its membership.

        Raises:
            sqlite3.IntegrityError: If the id or name is already taken
        """
        with self.connection() as conn:
            self._insert_book_list(conn, book_list)

    def get_book_lists(self) -> list[BookList]:
        """Get all book lists in insertion order."""
        with self.connection() as conn:
            return self._read_book_lists(conn)

    def _read_book_lists(self, conn: sqlite3.Connection) -> list[BookList]:
        rows = conn.execute("SELECT * FROM book_lists ORDER BY seq").fetchall()
        return [
            BookList(
                id=row["id"],
                name=row["name"],
                description=row["description"],
                book_ids=self._read_members(conn, row["id"]),
                created_at=parse_timestamp(row["created_at"]),
                updated_at=parse_timestamp(row["updated_at"]),
            )
            for row in rows
        ]

    def count_book_lists(self) -> int:
        """Get the number of book lists."""
        with self.connection() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM book_lists").fetchone()[0])

    # =========================================================================
    # Categories
    # =========================================================================

    def add_category(self, name: str) -> bool:
        """
        Add a category name to the vocabulary.

        Returns:
            True if added, False if it already existed
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO categories (name) VALUES (?)", (name,)
            )
            return cursor.rowcount > 0

    def get_categories(self) -> list[str]:
        """Get the category vocabulary in insertion order."""
        with self.connection() as conn:
            return self._read_categories(conn)

    def _read_categories(self, conn: sqlite3.Connection) -> list[str]:
        rows = conn.execute("SELECT name FROM categories ORDER BY seq").fetchall()
        return [row["name"] for row in rows]

    # =========================================================================
    # Assets
    # =========================================================================

    def _insert_asset(self, conn: sqlite3.Connection, asset: Asset) -> bool:
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO assets
                (asset_id, data, media_type, source_url, cached_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                asset.asset_id,
                sqlite3.Binary(asset.data),
                asset.media_type,
                asset.source_url,
                format_timestamp(asset.cached_at),
            ),
        )
        return cursor.rowcount > 0

    @staticmethod
    def _asset_from_row(row: sqlite3.Row) -> Asset:
        return Asset(
            asset_id=row["asset_id"],
            data=bytes(row["data"]),
            media_type=row["media_type"],
            source_url=row["source_url"],
            cached_at=parse_timestamp(row["cached_at"]),
        )

    def add_asset(self, asset: Asset) -> bool:
        """
        Store an asset payload.

        Returns:
            True if stored, False if the content id already existed
        """
        with self.connection() as conn:
            return self._insert_asset(conn, asset)

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        """Get an asset by content id, or None if not found."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM assets WHERE asset_id = ?", (asset_id,)
            ).fetchone()
            return self._asset_from_row(row) if row else None

    def get_assets(self) -> list[Asset]:
        """Get all assets ordered by content id."""
        with self.connection() as conn:
            return self._read_assets(conn)

    def _read_assets(self, conn: sqlite3.Connection) -> list[Asset]:
        rows = conn.execute("SELECT * FROM assets ORDER BY asset_id").fetchall()
        return [self._asset_from_row(row) for row in rows]

    def count_assets(self) -> int:
        """Get the number of stored assets."""
        with self.connection() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM assets").fetchone()[0])

    # =========================================================================
    # Snapshot and batch application
    # =========================================================================

    def snapshot(self) -> LibrarySnapshot:
        """
        Take a consistent copy of the whole library.

        Returns:
            LibrarySnapshot read inside a single connection under the lock
        """
        with self.connection() as conn:
            assets = self._read_assets(conn)
            return LibrarySnapshot(
                books=self._read_books(conn),
                book_lists=self._read_book_lists(conn),
                categories=self._read_categories(conn),
                assets={asset.asset_id: asset for asset in assets},
            )

    def apply_operations(self, operations: Iterable[StoreOperation]) -> None:
        """
        Apply a batch of store operations as a single transaction.

        Either every operation is applied or, if any of them fails, the
        transaction is rolled back and the exception propagates with the
        store unchanged.

        Args:
            operations: Operations produced by the merge resolver

        Raises:
            sqlite3.Error: If a write fails (the batch is rolled back)
            LookupError: If an operation targets a missing book or list
            TypeError: If an operation is not a known StoreOperation
        """
        with self.connection() as conn:
            for operation in operations:
                self._apply_operation(conn, operation)

    def _apply_operation(
        self, conn: sqlite3.Connection, operation: StoreOperation
    ) -> None:
        if isinstance(operation, InsertBook):
            self._insert_book(conn, operation.book)
        elif isinstance(operation, UpdateBook):
            self._update_book(conn, operation.book)
        elif isinstance(operation, InsertBookList):
            self._insert_book_list(conn, operation.book_list)
        elif isinstance(operation, ReplaceListMembership):
            self._require_list(conn, operation.list_id)
            self._write_members(conn, operation.list_id, operation.book_ids)
        elif isinstance(operation, AppendListMembership):
            self._require_list(conn, operation.list_id)
            current = self._read_members(conn, operation.list_id)
            self._write_members(
                conn, operation.list_id, current + list(operation.book_ids)
            )
        elif isinstance(operation, InsertAsset):
            self._insert_asset(conn, operation.asset)
        elif isinstance(operation, AddCategory):
            conn.execute(
                "INSERT OR IGNORE INTO categories (name) VALUES (?)",
                (operation.name,),
            )
        elif isinstance(operation, ClearLibrary):
            self._clear(conn)
        else:
            raise TypeError(f"Unknown store operation: {operation!r}")

    def _clear(self, conn: sqlite3.Connection) -> None:
        conn.execute("DELETE FROM book_list_members")
        conn.execute("DELETE FROM book_lists")
        conn.execute("DELETE FROM books")
        conn.execute("DELETE FROM categories")
        conn.execute("DELETE FROM assets")

    def clear_all(self) -> None:
        """Delete the whole library (use with caution)."""
        with self.connection() as conn:
            self._clear(conn)
