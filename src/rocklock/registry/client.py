"""Package index clients.

Both clients speak the same JSON document per package::

    {
      "name": "luasocket",
      "versions": [
        {
          "version": "3.1.0-1",
          "dependencies": ["lua >= 5.1"],
          "checksum": "sha256:...",
          "source_url": "https://.../luasocket-3.1.0.tar.gz",
          "build_type": "builtin",
          "binary_urls": {"x86_64-unknown-linux-gnu": {"url": "...", "checksum": "sha256:..."}}
        }
      ]
    }

:class:`HttpIndexClient` fetches ``<index_url>/index/<name>.json``;
:class:`SnapshotIndexClient` serves a whole index loaded from one YAML or
JSON file, which makes resolutions reproducible offline.
"""
from __future__ import annotations

import json
import logging
import os
import urllib.parse
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from ..common.http_client import get_json
from ..common.logging_utils import extra_context, is_debug_enabled, safe_url
from ..constants import Constants
from ..errors import ConfigError, FetchError
from ..versioning.cache import TTLCache
from ..versioning.version import luarocks_revision, try_parse_version
from .models import BinaryArtifact, VersionMetadata

logger = logging.getLogger(__name__)


def _normalize_dependencies(raw: Any) -> tuple:
    """Accept a list of rockspec strings or a name -> constraint mapping."""
    if raw is None:
        return ()
    if isinstance(raw, Mapping):
        return tuple(f"{name} {cons or ''}".strip() for name, cons in sorted(raw.items()))
    if isinstance(raw, (list, tuple)):
        return tuple(str(dep) for dep in raw)
    raise ValueError(f"dependencies must be a list or mapping, got {type(raw).__name__}")


def _binary_artifacts(raw: Any) -> Dict[str, BinaryArtifact]:
    artifacts: Dict[str, BinaryArtifact] = {}
    if not isinstance(raw, Mapping):
        return artifacts
    for target, info in raw.items():
        if isinstance(info, Mapping) and info.get("url") and info.get("checksum"):
            artifacts[str(target)] = BinaryArtifact(url=info["url"], checksum=info["checksum"])
    return artifacts


def metadata_from_dict(name: str, data: Mapping[str, Any]) -> Optional[VersionMetadata]:
    """Convert one index record into :class:`VersionMetadata`.

    Records with an unparseable version (``scm-1``, ``dev-1``) are skipped
    and None is returned.
    """
    version_text = str(data.get("version", ""))
    version = try_parse_version(version_text)
    if version is None:
        logger.debug("Skipping %s %r: not a semantic version", name, version_text)
        return None
    return VersionMetadata(
        name=name,
        version=version,
        dependencies=_normalize_dependencies(data.get("dependencies")),
        checksum=data.get("checksum"),
        source_url=data.get("source_url"),
        binary_urls=_binary_artifacts(data.get("binary_urls")),
        build_type=data.get("build_type"),
        revision=luarocks_revision(version_text),
    )


def _metadata_list(name: str, records: Iterable[Mapping[str, Any]]) -> List[VersionMetadata]:
    by_version: Dict[Any, VersionMetadata] = {}
    for record in records:
        meta = metadata_from_dict(name, record)
        if meta is None:
            continue
        current = by_version.get(meta.version)
        if current is None:
            by_version[meta.version] = meta
        elif meta.revision > current.revision:
            # A later rockspec revision of the same release supersedes it.
            logger.debug("%s %s: revision %d supersedes %d",
                         name, meta.version, meta.revision, current.revision)
            by_version[meta.version] = meta
        elif meta.revision < current.revision:
            logger.debug("%s %s: revision %d already superseded by %d",
                         name, meta.version, meta.revision, current.revision)
        else:
            logger.warning("%s: records %r and %r both normalize to %s; keeping %s",
                           name, current.source_url, meta.source_url, meta.version,
                           current.source_url)
    return sorted(by_version.values(), key=lambda m: m.version, reverse=True)


class SnapshotIndexClient:
    """Index served from an in-memory snapshot."""

    def __init__(self, packages: Mapping[str, Iterable[Mapping[str, Any]]]):
        self._packages: Dict[str, List[VersionMetadata]] = {
            name: _metadata_list(name, records) for name, records in packages.items()
        }
        self.lookups: Dict[str, int] = {}

    @classmethod
    def from_file(cls, path: str) -> "SnapshotIndexClient":
        """Load ``{"packages": {name: [records...]}}`` from YAML or JSON."""
        try:
            with open(path, "r", encoding="utf-8") as fh:
                if path.endswith(".json"):
                    data = json.load(fh)
                else:
                    data = yaml.safe_load(fh)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ConfigError(f"cannot load index snapshot {path}: {exc}") from exc
        if not isinstance(data, Mapping):
            raise ConfigError(f"index snapshot {path} must be a mapping")
        packages = data.get("packages", data)
        if not isinstance(packages, Mapping):
            raise ConfigError(f"index snapshot {path}: 'packages' must be a mapping")
        return cls(packages)

    def get_versions(self, name: str) -> List[VersionMetadata]:
        self.lookups[name] = self.lookups.get(name, 0) + 1
        return list(self._packages.get(name, []))

    def package_names(self) -> List[str]:
        return sorted(self._packages)


class HttpIndexClient:
    """Read-through cached client for a remote JSON index."""

    def __init__(self, index_url: str = Constants.INDEX_URL, cache: Optional[TTLCache] = None,
                 cache_ttl: int = Constants.INDEX_CACHE_TTL_SEC):
        self.index_url = index_url.rstrip("/") + "/"
        self.cache = cache if cache is not None else TTLCache(default_ttl=cache_ttl)
        self._cache_ttl = cache_ttl

    def package_url(self, name: str) -> str:
        return urllib.parse.urljoin(
            self.index_url, f"index/{urllib.parse.quote(name, safe='')}.json"
        )

    def get_versions(self, name: str) -> List[VersionMetadata]:
        """Return every published version of ``name``, newest first.

        An unknown package yields an empty list; transport failures raise
        :class:`FetchError` so resolution never proceeds on partial data.
        """
        cache_key = f"index:{self.index_url}:{name}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return list(cached)

        url = self.package_url(name)
        status_code, _, data = get_json(url)
        if status_code == 404:
            versions: List[VersionMetadata] = []
        elif status_code != 200 or not isinstance(data, Mapping):
            raise FetchError(
                f"index lookup for '{name}' failed at {safe_url(url)} (status {status_code})",
                package=name,
            )
        else:
            versions = _metadata_list(name, data.get("versions") or [])

        if is_debug_enabled(logger):
            logger.debug(
                "Index lookup",
                extra=extra_context(
                    event="index_lookup",
                    component="index_client",
                    package=name,
                    candidate_count=len(versions),
                ),
            )
        self.cache.set(cache_key, versions, self._cache_ttl)
        return list(versions)


def build_index_client(index: str, cache: Optional[TTLCache] = None):
    """Pick a client for ``index``: a local snapshot file or an HTTP index URL."""
    if index.startswith(("http://", "https://")):
        return HttpIndexClient(index, cache=cache)
    if os.path.isfile(index):
        return SnapshotIndexClient.from_file(index)
    raise ConfigError(f"index {index!r} is neither an http(s) URL nor a snapshot file")
