"""
Binary asset model (cached cover images).

Assets are content-addressed: the asset id is the SHA-256 digest of the
bytes, so the same image cached by two libraries has the same id.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime

from bookvault.library.book import utc_now

DEFAULT_MEDIA_TYPE = "application/octet-stream"


@dataclass
class Asset:
    """
    Binary payload referenced by books through its content id.

    Attributes:
        asset_id: SHA-256 hex digest of data
        data: Raw bytes
        media_type: MIME type of the payload
        source_url: URL the payload was fetched from, if any
        cached_at: When the payload was stored
    """

    asset_id: str
    data: bytes
    media_type: str = DEFAULT_MEDIA_TYPE
    source_url: str = ""
    cached_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        media_type: str = DEFAULT_MEDIA_TYPE,
        source_url: str = "",
        cached_at: datetime | None = None,
    ) -> Asset:
        """Create an asset, deriving its id from the content."""
        return cls(
            asset_id=hashlib.sha256(data).hexdigest(),
            data=data,
            media_type=media_type,
            source_url=source_url,
            cached_at=cached_at or utc_now(),
        )

    @property
    def size(self) -> int:
        """Payload length in bytes."""
        return len(self.data)

    def __repr__(self) -> str:
        """Return a readable string representation."""
        return (
            f"Asset(asset_id={self.asset_id[:12]!r}..., "
            f"media_type={self.media_type!r}, size={self.size})"
        )
