"""Content checksums in ``<algorithm>:<hex>`` form."""

from __future__ import annotations

import hashlib
from typing import Tuple

from ..constants import Constants


def parse_checksum(text: str) -> Tuple[str, str]:
    """Split ``sha256:ab12...`` into (algorithm, lowercase hex digest)."""
    algorithm, sep, digest = (text or "").partition(":")
    algorithm = algorithm.strip().lower()
    digest = digest.strip().lower()
    if not sep or not digest:
        raise ValueError(f"checksum must look like '<algorithm>:<hex>', got {text!r}")
    if algorithm not in hashlib.algorithms_guaranteed:
        raise ValueError(f"unsupported checksum algorithm {algorithm!r}")
    try:
        int(digest, 16)
    except ValueError as exc:
        raise ValueError(f"checksum digest is not hexadecimal: {text!r}") from exc
    return algorithm, digest


def compute_checksum(data: bytes, algorithm: str = Constants.CHECKSUM_ALGORITHM) -> str:
    return f"{algorithm}:{hashlib.new(algorithm, data).hexdigest()}"


def file_checksum(path: str, algorithm: str = Constants.CHECKSUM_ALGORITHM) -> str:
    digest = hashlib.new(algorithm)
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(Constants.FETCH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return f"{algorithm}:{digest.hexdigest()}"


def matches(data: bytes, expected: str) -> Tuple[bool, str]:
    """Check ``data`` against ``expected`` using the expected algorithm.

    Returns (ok, actual checksum in the expected algorithm).
    """
    algorithm, digest = parse_checksum(expected)
    actual = compute_checksum(data, algorithm)
    return actual == f"{algorithm}:{digest}", actual
