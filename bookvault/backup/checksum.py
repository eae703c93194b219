"""
Content digests for byte buffers and structured documents.

Documents are hashed over a canonical JSON form (sorted keys, no
insignificant whitespace), so a document parsed and re-serialized by any
JSON implementation produces the same digest. Strings are hashed exactly
as written.
"""

import hashlib
import json
from typing import Any, Optional

# Name of the digest algorithm recorded in manifests
ALGORITHM = "sha256"

# Length of a hex digest
DIGEST_LENGTH = 64


def digest(data: Optional[bytes]) -> str:
    """
    Compute the SHA-256 hex digest of a byte buffer.

    Args:
        data: Bytes to hash. None is treated as the empty buffer.

    Returns:
        64-character lowercase hex string
    """
    return hashlib.sha256(data or b"").hexdigest()


def canonical_json(value: Any) -> str:
    """
    Serialize a JSON-compatible value to its canonical string form.

    Args:
        value: dict/list/str/number/bool/None structure

    Returns:
        Canonical JSON string

    Raises:
        TypeError: If the value contains non-JSON types
    """
    return json.dumps(
        value,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def digest_document(value: Any) -> str:
    """
    Compute the digest of a structured document.

    Args:
        value: JSON-compatible document

    Returns:
        SHA-256 hex digest of the canonical JSON encoding
    """
    return digest(canonical_json(value).encode("utf-8"))


def is_digest(value: Any) -> bool:
    """Check whether value looks like a hex digest produced by digest()."""
    if not isinstance(value, str) or len(value) != DIGEST_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)
