"""
String normalization utilities for book deduplication.

Provides consistent normalization for the keys used to recognise the same
book across two libraries: the normalized ISBN (primary key) and the
title/author pair (secondary key).
"""

from __future__ import annotations

import re
import unicodedata

# Characters kept when cleaning an ISBN
_ISBN_CLEAN_PATTERN = re.compile(r"[^0-9X]")


def normalize_string(
    value: str | None,
    sort_words: bool = False,
    remove_spaces: bool = True,
    strip_punctuation: bool = True,
    strip_accents: bool = True,
) -> str:
    """
    Normalize a string for matching key generation.

    Args:
        value: String to normalize
        sort_words: If True, sort words alphabetically before joining.
                   This handles author order variations like "Herbert, Frank"
                   vs "Frank Herbert".
        remove_spaces: If True, remove all spaces from the result.
                      If False, multiple spaces are collapsed to single space.
        strip_punctuation: If True, remove non-alphanumeric characters.
                          If False, only normalize unicode and whitespace.
        strip_accents: If True, decompose accented characters and drop the
                      combining marks. If False, accents are kept and only
                      case and whitespace are normalized.

    Returns:
        Normalized lowercase string
    """
    if not value:
        return ""

    if strip_accents:
        # Normalize unicode (decompose accents, etc.)
        normalized = unicodedata.normalize("NFKD", value)

        # Remove combining characters (accents)
        normalized = "".join(c for c in normalized if not unicodedata.combining(c))
    else:
        normalized = unicodedata.normalize("NFC", value)

    # Convert to lowercase
    normalized = normalized.lower()

    # Optionally remove punctuation and special characters
    if strip_punctuation:
        normalized = re.sub(r"[^\w\s]|_", "", normalized)

    # Normalize whitespace
    normalized = re.sub(r"\s+", " ", normalized).strip()

    if sort_words:
        words = normalized.split()
        normalized = "".join(sorted(words))
    elif remove_spaces:
        normalized = normalized.replace(" ", "")

    return normalized


def normalize_text_key(value: str | None) -> str:
    """
    Normalize free text for case- and whitespace-insensitive comparison.

    Used for the title/author dedup key: "  Frank   HERBERT " and
    "frank herbert" produce the same key, but accents and punctuation are
    significant.

    Args:
        value: Text to normalize

    Returns:
        Lowercase text with runs of whitespace collapsed to one space
    """
    return normalize_string(
        value, remove_spaces=False, strip_punctuation=False, strip_accents=False
    )


def clean_isbn(isbn: str | None) -> str:
    """Strip separators from an ISBN, keeping digits and an upper-case X."""
    if not isbn:
        return ""
    return _ISBN_CLEAN_PATTERN.sub("", isbn.upper())


def is_valid_isbn10(isbn: str) -> bool:
    """
    Validate an ISBN-10 check digit.

    Args:
        isbn: ISBN string, separators allowed

    Returns:
        True if the cleaned value has 10 characters and a valid check digit
    """
    cleaned = clean_isbn(isbn)
    if len(cleaned) != 10 or "X" in cleaned[:9]:
        return False

    total = sum(int(cleaned[i]) * (10 - i) for i in range(9))
    check = 10 if cleaned[9] == "X" else int(cleaned[9])
    return (total + check) % 11 == 0


def is_valid_isbn13(isbn: str) -> bool:
    """
    Validate an ISBN-13 check digit.

    Args:
        isbn: ISBN string, separators allowed

    Returns:
        True if the cleaned value has 13 digits and a valid check digit
    """
    cleaned = clean_isbn(isbn)
    if len(cleaned) != 13 or not cleaned.isdigit():
        return False

    total = sum(int(cleaned[i]) * (1 if i % 2 == 0 else 3) for i in range(12))
    return (10 - total % 10) % 10 == int(cleaned[12])


def isbn10_to_isbn13(isbn10: str) -> str:
    """
    Convert an ISBN-10 to its ISBN-13 form (978 prefix, new check digit).

    Args:
        isbn10: ISBN-10 string, separators allowed

    Returns:
        13-digit ISBN string
    """
    base = "978" + clean_isbn(isbn10)[:9]
    total = sum(int(base[i]) * (1 if i % 2 == 0 else 3) for i in range(12))
    return base + str((10 - total % 10) % 10)


def normalize_isbn(isbn: str | None) -> str:
    """
    Normalize an ISBN for use as a dedup key.

    Valid ISBN-10 values are converted to ISBN-13 so that both forms of
    the same book produce the same key. Valid ISBN-13 values are returned
    without separators. Anything else is returned cleaned but otherwise
    unchanged, so two identical invalid values still match each other.

    Args:
        isbn: Raw ISBN string (may be None or empty)

    Returns:
        Normalized ISBN, or empty string when no ISBN is present
    """
    cleaned = clean_isbn(isbn)
    if not cleaned:
        return ""

    if len(cleaned) == 10 and is_valid_isbn10(cleaned):
        return isbn10_to_isbn13(cleaned)

    return cleaned
