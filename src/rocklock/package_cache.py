"""Content-addressed archive cache.

Archives live at ``<root>/<algorithm>/<hex[:2]>/<hex>``; the path is derived
from the checksum alone, so an entry can always be re-verified by hashing it.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Optional

from .fetch.checksum import compute_checksum, file_checksum, parse_checksum

logger = logging.getLogger(__name__)


class PackageCache:
    """Verified archive bytes keyed by checksum."""

    def __init__(self, root: str):
        self.root = os.path.expanduser(root)

    def path_for(self, checksum: str) -> str:
        algorithm, digest = parse_checksum(checksum)
        return os.path.join(self.root, algorithm, digest[:2], digest)

    def has(self, checksum: str) -> bool:
        return os.path.isfile(self.path_for(checksum))

    def store(self, data: bytes, checksum: Optional[str] = None) -> str:
        """Write ``data`` under its checksum and return that checksum.

        Raises:
            ValueError: ``checksum`` was given and does not match ``data``.
        """
        if checksum:
            algorithm, digest = parse_checksum(checksum)
            actual = compute_checksum(data, algorithm)
            if actual != f"{algorithm}:{digest}":
                raise ValueError(f"refusing to cache bytes under {checksum}: content hashes to {actual}")
        else:
            actual = compute_checksum(data)
        path = self.path_for(actual)
        if os.path.isfile(path):
            return actual
        directory = os.path.dirname(path)
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, path)
        except Exception:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
        logger.debug("Cached %d bytes at %s", len(data), path)
        return actual

    def load(self, checksum: str) -> Optional[bytes]:
        """Return the cached bytes if present and still hashing to ``checksum``."""
        if not self.verify(checksum):
            return None
        with open(self.path_for(checksum), "rb") as fh:
            return fh.read()

    def verify(self, checksum: str) -> bool:
        path = self.path_for(checksum)
        if not os.path.isfile(path):
            return False
        algorithm, digest = parse_checksum(checksum)
        actual = file_checksum(path, algorithm)
        if actual != f"{algorithm}:{digest}":
            logger.warning("Cached archive %s is corrupt (hashes to %s)", path, actual)
            return False
        return True
