"""
Import strategy value object.

An ImportStrategy tells the merge resolver what to do with each kind of
conflict. It is immutable: defaults apply to every conflict, and optional
per-list and per-book overrides refine them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional

from bookvault.library.book import MERGEABLE_FIELDS


class ListAction(str, Enum):
    """What to do with an incoming list whose name already exists."""

    RENAME = "rename"  # Insert under a suggested unique name
    OVERWRITE = "overwrite"  # Replace the existing list's membership
    SKIP = "skip"  # Drop the incoming list
    MERGE = "merge"  # Append missing members to the existing list


class BookAction(str, Enum):
    """What to do with an incoming book that matches an existing one."""

    MERGE = "merge"  # Combine field-wise into the existing record
    SKIP = "skip"  # Keep the existing record untouched
    DUPLICATE = "duplicate"  # Insert the incoming book as a new record


class CommentMerge(str, Enum):
    """How to combine free-text fields (notes, recommendation)."""

    KEEP_LOCAL = "keepLocal"
    KEEP_IMPORTED = "keepImported"
    BOTH = "both"


class FieldMerge(str, Enum):
    """How to combine structured fields when merging two books."""

    PREFER_LOCAL = "preferLocal"
    PREFER_IMPORTED = "preferImported"
    NON_EMPTY_WINS = "nonEmptyWins"


@dataclass(frozen=True)
class BookResolution:
    """
    Per-book override of the default book handling.

    Unset attributes fall back to the strategy defaults.

    Attributes:
        action: Book action for this conflict
        field_merge: Field merge mode for this conflict
        comment_merge: Comment merge mode for this conflict
        field_strategies: Field name -> FieldMerge, applied before field_merge
    """

    action: Optional[BookAction] = None
    field_merge: Optional[FieldMerge] = None
    comment_merge: Optional[CommentMerge] = None
    field_strategies: Mapping[str, FieldMerge] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.field_strategies) - set(MERGEABLE_FIELDS)
        if unknown:
            raise ValueError(
                f"Unknown mergeable field(s): {', '.join(sorted(unknown))}"
            )
        object.__setattr__(
            self,
            "field_strategies",
            MappingProxyType(
                {name: FieldMerge(mode) for name, mode in self.field_strategies.items()}
            ),
        )


@dataclass(frozen=True)
class ImportStrategy:
    """
    Immutable description of how to resolve import conflicts.

    Attributes:
        default_list_action: Action for conflicting lists
        default_book_action: Action for conflicting books
        default_comment_merge: Merge mode for notes and recommendation
        default_field_merge: Merge mode for the other mergeable fields
        list_overrides: Incoming list name -> ListAction
        book_overrides: Incoming book id -> BookResolution

    Usage:
        strategy = ImportStrategy(default_book_action=BookAction.SKIP)
        action = strategy.list_action_for("Favorites")
    """

    default_list_action: ListAction = ListAction.RENAME
    default_book_action: BookAction = BookAction.MERGE
    default_comment_merge: CommentMerge = CommentMerge.BOTH
    default_field_merge: FieldMerge = FieldMerge.NON_EMPTY_WINS
    list_overrides: Mapping[str, ListAction] = field(default_factory=dict)
    book_overrides: Mapping[str, BookResolution] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Accept raw values so config and CLI input can be passed through
        object.__setattr__(
            self, "default_list_action", ListAction(self.default_list_action)
        )
        object.__setattr__(
            self, "default_book_action", BookAction(self.default_book_action)
        )
        object.__setattr__(
            self, "default_comment_merge", CommentMerge(self.default_comment_merge)
        )
        object.__setattr__(
            self, "default_field_merge", FieldMerge(self.default_field_merge)
        )
        object.__setattr__(
            self,
            "list_overrides",
            MappingProxyType(
                {
                    name: ListAction(action)
                    for name, action in self.list_overrides.items()
                }
            ),
        )
        object.__setattr__(
            self, "book_overrides", MappingProxyType(dict(self.book_overrides))
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> ImportStrategy:
        """
        Build a strategy from configuration keys.

        Recognized keys: default_list_action, default_book_action,
        default_comment_merge, default_field_merge. Missing keys keep
        their defaults.

        Raises:
            ValueError: If a value is not a member of its enum
        """
        defaults = cls()
        return cls(
            default_list_action=config.get(
                "default_list_action", defaults.default_list_action
            ),
            default_book_action=config.get(
                "default_book_action", defaults.default_book_action
            ),
            default_comment_merge=config.get(
                "default_comment_merge", defaults.default_comment_merge
            ),
            default_field_merge=config.get(
                "default_field_merge", defaults.default_field_merge
            ),
        )

    def list_action_for(self, name: str) -> ListAction:
        """Action for the incoming list named name."""
        return self.list_overrides.get(name, self.default_list_action)

    def book_action_for(self, book_id: str) -> BookAction:
        """Action for the incoming book with id book_id."""
        override = self.book_overrides.get(book_id)
        if override is not None and override.action is not None:
            return override.action
        return self.default_book_action

    def comment_merge_for(self, book_id: str) -> CommentMerge:
        """Comment merge mode for the incoming book with id book_id."""
        override = self.book_overrides.get(book_id)
        if override is not None and override.comment_merge is not None:
            return override.comment_merge
        return self.default_comment_merge

    def field_merge_for(self, book_id: str, field_name: str) -> FieldMerge:
        """
        Field merge mode for one field of one incoming book.

        Per-field overrides win over the per-book mode, which wins over the
        strategy default.
        """
        override = self.book_overrides.get(book_id)
        if override is not None:
            if field_name in override.field_strategies:
                return override.field_strategies[field_name]
            if override.field_merge is not None:
                return override.field_merge
        return self.default_field_merge


DEFAULT_STRATEGY = ImportStrategy()
