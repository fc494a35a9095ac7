"""Verified archive downloads."""

from .checksum import compute_checksum, file_checksum, matches, parse_checksum
from .coordinator import (
    BatchState,
    FetchCoordinator,
    FetchResult,
    FetchSource,
    HTTPStatusError,
)

__all__ = [
    "BatchState",
    "FetchCoordinator",
    "FetchResult",
    "FetchSource",
    "HTTPStatusError",
    "compute_checksum",
    "file_checksum",
    "matches",
    "parse_checksum",
]
