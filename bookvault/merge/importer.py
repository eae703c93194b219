"""
Import orchestrator.

Sequences an import: validate the artifact, detect conflicts against the
live library, hand the conflicts to the caller for review, then resolve
and commit them as one transaction. This is the only component that
writes to the live library.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from bookvault.backup.errors import BackupError, BackupErrorCode
from bookvault.backup.exporter import BackupExporter
from bookvault.backup.validator import BackupValidator, ValidatedDataSet
from bookvault.library.book import utc_now
from bookvault.merge.conflict import ConflictDetector, ConflictInfo
from bookvault.merge.resolver import MergeResolver, ResolutionPlan
from bookvault.merge.strategy import DEFAULT_STRATEGY, ImportStrategy

if TYPE_CHECKING:
    from bookvault.storage.db import LibraryDatabase

logger = logging.getLogger(__name__)


class ImportState(str, Enum):
    """Lifecycle of an import."""

    IDLE = "idle"
    VALIDATING = "validating"
    VALIDATED = "validated"
    REJECTED = "rejected"
    RESOLVING = "resolving"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ImportStateError(Exception):
    """Raised when a pending import handle is used in the wrong state."""

    pass


@dataclass
class PendingImport:
    """
    Handle for a validated import awaiting confirmation.

    Attributes:
        handle_id: Unique id of this import
        dataset: Validated incoming data set
        conflicts: Conflicts detected when the import began
        state: Current lifecycle state
        created_at: When the import began
    """

    handle_id: str
    dataset: ValidatedDataSet
    conflicts: ConflictInfo
    state: ImportState = ImportState.VALIDATED
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class ImportSummary:
    """Per-entity outcome counts of a committed import."""

    books_added: int = 0
    books_merged: int = 0
    books_skipped: int = 0
    lists_created: int = 0
    lists_updated: int = 0
    lists_skipped: int = 0
    assets_added: int = 0
    categories_added: int = 0

    @classmethod
    def from_plan(cls, plan: ResolutionPlan) -> ImportSummary:
        """Build a summary from the counts of a resolution plan."""
        return cls(
            books_added=plan.books_added,
            books_merged=plan.books_merged,
            books_skipped=plan.books_skipped,
            lists_created=plan.lists_created,
            lists_updated=plan.lists_updated,
            lists_skipped=plan.lists_skipped,
            assets_added=plan.assets_added,
            categories_added=plan.categories_added,
        )

    @property
    def books(self) -> int:
        """Books written (added or merged)."""
        return self.books_added + self.books_merged

    @property
    def lists(self) -> int:
        """Lists written (created or updated)."""
        return self.lists_created + self.lists_updated

    @property
    def assets(self) -> int:
        """Asset payloads written."""
        return self.assets_added


@dataclass
class ImportResult:
    """
    Outcome of an import.

    Attributes:
        success: True if the import was committed
        summary: Outcome counts (successful imports only)
        error: Error code (failed imports only)
        details: Diagnostic detail for the error
    """

    success: bool
    summary: Optional[ImportSummary] = None
    error: Optional[BackupErrorCode] = None
    details: Optional[str] = None

    @classmethod
    def failure(cls, code: BackupErrorCode, details: Optional[str]) -> ImportResult:
        """Create a failed result."""
        return cls(success=False, error=code, details=details)


class ImportOrchestrator:
    """
    Coordinates export and conflict-aware import for one live library.

    Usage:
        orchestrator = ImportOrchestrator(database)

        pending = orchestrator.begin_import(artifact_bytes)
        show_preview(pending.conflicts)
        result = orchestrator.confirm_import(pending, ImportStrategy())
        if not result.success:
            print(result.error.value, result.details)
    """

    def __init__(
        self,
        database: LibraryDatabase,
        validator: Optional[BackupValidator] = None,
        detector: Optional[ConflictDetector] = None,
        resolver: Optional[MergeResolver] = None,
        exporter: Optional[BackupExporter] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            database: Live library store
            validator: Artifact validator
            detector: Conflict detector
            resolver: Merge resolver
            exporter: Backup exporter for the same store
        """
        self.database = database
        self.validator = validator or BackupValidator()
        self.detector = detector or ConflictDetector()
        self.resolver = resolver or MergeResolver()
        self.exporter = exporter or BackupExporter(database)
        self._pending: dict[str, PendingImport] = {}
        # State of the most recent begin_import() call
        self.state = ImportState.IDLE

    # =========================================================================
    # Export
    # =========================================================================

    def export_metadata(self) -> bytes:
        """Export the library as a metadata-only JSON document."""
        return self.exporter.export_metadata_bytes()

    def export_full_archive(self) -> bytes:
        """Export the library as a full archive including cover assets."""
        return self.exporter.export_full_archive()

    # =========================================================================
    # Import
    # =========================================================================

    def begin_import(self, artifact: bytes) -> PendingImport:
        """
        Validate an artifact and detect its conflicts with the library.

        Nothing is written to the store. A handle from an earlier call that
        is still pending is cancelled.

        Args:
            artifact: Raw artifact bytes (metadata JSON or full archive)

        Returns:
            PendingImport handle in the VALIDATED state

        Raises:
            BackupError: If the artifact is rejected
        """
        logger.info(f"Validating import artifact ({len(artifact)} bytes)")
        self.state = ImportState.VALIDATING
        try:
            dataset = self.validator.validate(artifact)
        except BackupError as e:
            self.state = ImportState.REJECTED
            logger.warning(f"Import rejected: {e}")
            raise

        with self.database.exclusive():
            snapshot = self.database.snapshot()
        conflicts = self.detector.detect(dataset, snapshot)

        # A new import supersedes any handle still awaiting confirmation
        for stale in self._pending.values():
            stale.state = ImportState.CANCELLED
            logger.info(f"Import {stale.handle_id} superseded")
        self._pending.clear()

        pending = PendingImport(
            handle_id=uuid.uuid4().hex,
            dataset=dataset,
            conflicts=conflicts,
        )
        self._pending[pending.handle_id] = pending
        self.state = ImportState.VALIDATED
        logger.debug(f"Import {pending.handle_id} awaiting confirmation")
        return pending

    def _check_open(self, pending: PendingImport) -> None:
        if (
            pending.state != ImportState.VALIDATED
            or self._pending.get(pending.handle_id) is not pending
        ):
            raise ImportStateError(
                f"Import {pending.handle_id} cannot be used in state "
                f"{pending.state.value}"
            )

    def _plan(
        self, pending: PendingImport, strategy: ImportStrategy, replace: bool
    ) -> ResolutionPlan:
        """Re-detect against a fresh snapshot and resolve. Caller holds the lock."""
        dataset = pending.dataset
        if replace:
            return self.resolver.plan_replace(dataset)

        snapshot = self.database.snapshot()
        pending.conflicts = self.detector.detect(dataset, snapshot)
        return self.resolver.plan(dataset, pending.conflicts, strategy, snapshot)

    def preview_import(
        self,
        pending: PendingImport,
        strategy: ImportStrategy = DEFAULT_STRATEGY,
        replace: bool = False,
    ) -> ImportSummary:
        """
        Compute what confirm_import() would do, without writing.

        Raises:
            ImportStateError: If the handle is no longer pending
        """
        self._check_open(pending)
        with self.database.exclusive():
            plan = self._plan(pending, strategy, replace)
        return ImportSummary.from_plan(plan)

    def confirm_import(
        self,
        pending: PendingImport,
        strategy: ImportStrategy = DEFAULT_STRATEGY,
        replace: bool = False,
    ) -> ImportResult:
        """
        Resolve and commit a pending import as one transaction.

        Args:
            pending: Handle returned by begin_import()
            strategy: How to resolve conflicts
            replace: Replace the whole library instead of merging

        Returns:
            ImportResult; on failure the store is unchanged and the error is
            restore-failed

        Raises:
            ImportStateError: If the handle was already confirmed or cancelled
        """
        self._check_open(pending)
        del self._pending[pending.handle_id]

        try:
            with self.database.exclusive():
                pending.state = ImportState.RESOLVING
                plan = self._plan(pending, strategy, replace)

                pending.state = ImportState.COMMITTING
                self.database.apply_operations(plan.operations)
        except Exception as e:
            pending.state = ImportState.FAILED
            logger.error(f"Import {pending.handle_id} failed: {e}")
            return ImportResult.failure(BackupErrorCode.RESTORE_FAILED, str(e))

        pending.state = ImportState.DONE
        summary = ImportSummary.from_plan(plan)
        logger.info(
            f"Import {pending.handle_id} committed: {summary.books} books, "
            f"{summary.lists} lists, {summary.assets} assets"
        )
        return ImportResult(success=True, summary=summary)

    def cancel_import(self, pending: PendingImport) -> None:
        """
        Abandon a pending import. Nothing is written.

        Raises:
            ImportStateError: If the handle was already confirmed or cancelled
        """
        self._check_open(pending)
        del self._pending[pending.handle_id]
        pending.state = ImportState.CANCELLED
        logger.info(f"Import {pending.handle_id} cancelled")

    def import_artifact(
        self,
        artifact: bytes,
        strategy: ImportStrategy = DEFAULT_STRATEGY,
        replace: bool = False,
    ) -> ImportResult:
        """
        Validate and commit an artifact in one call.

        Validation errors are returned as a failed ImportResult rather
        than raised.
        """
        try:
            pending = self.begin_import(artifact)
        except BackupError as e:
            return ImportResult.failure(e.code, e.details)
        return self.confirm_import(pending, strategy, replace=replace)
