"""Install, update and verify pipelines.

manifest -> resolver -> lock plan -> verified fetch -> installer -> lockfile.
The project's write lock is held from the first read of the lockfile until
the new one is committed, and nothing is committed unless every scheduled
archive was verified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from .common.logging_utils import Timer
from .config import Settings
from .constants import Constants, NativeBuildTypes
from .errors import FetchError, LockfileCorruptError, LockfileError
from .fetch.coordinator import FetchCoordinator, FetchResult, FetchSource
from .fetch.checksum import compute_checksum
from .lockfile.builder import LockPlan, build_lock
from .lockfile.diff import ChangeKind, UpdateDiff, compute_diff
from .lockfile.model import Lockfile
from .lockfile.store import LockfileStore
from .manifest import Manifest
from .package_cache import PackageCache
from .registry.client import build_index_client
from .registry.models import IndexClient, is_runtime_dependency
from .resolver.graph import PackageRef, ResolvedGraph
from .resolver.resolver import resolve
from .versioning.cache import TTLCache
from .versioning.constraint import parse_constraint
from .versioning.version import Version

logger = logging.getLogger(__name__)


class Installer(Protocol):
    """Unpacks verified archives into the project's module tree."""

    def install(self, lock: Lockfile, archives: Mapping[str, bytes]) -> None:
        ...


class LoggingInstaller:
    """Default installer: reports what would be unpacked."""

    def install(self, lock: Lockfile, archives: Mapping[str, bytes]) -> None:
        for name in sorted(archives):
            logger.debug("Archive ready for %s %s (%d bytes)",
                         name, lock.entries[name].version, len(archives[name]))
        logger.info("%d of %d archive(s) ready to install", len(archives), len(lock))


@dataclass(frozen=True)
class BuildDescriptor:
    name: str
    version: str
    build_type: str
    source_url: Optional[str]


def native_builds(lock: Lockfile) -> List[BuildDescriptor]:
    """Entries the build orchestrator has to compile, in lockfile order."""
    native = {t.value for t in NativeBuildTypes}
    return [
        BuildDescriptor(entry.name, str(entry.version), entry.build_type, entry.source_url)
        for entry in lock
        if entry.build_type and entry.build_type.lower() in native
    ]


@dataclass
class InstallResult:
    lock: Lockfile
    diff: UpdateDiff
    fetched: List[PackageRef] = field(default_factory=list)
    reused: List[str] = field(default_factory=list)
    written: bool = False
    builds: List[BuildDescriptor] = field(default_factory=list)


@dataclass(frozen=True)
class VerifyIssue:
    name: str
    problem: str

    def __str__(self) -> str:
        return f"{self.name}: {self.problem}"


@dataclass
class VerifyReport:
    checked: int = 0
    issues: List[VerifyIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


class OutdatedStatus(Enum):
    UP_TO_DATE = "up to date"
    OUTDATED = "outdated"
    NOT_INSTALLED = "not installed"
    NOT_FOUND = "not found"


@dataclass(frozen=True)
class OutdatedPackage:
    """One direct dependency compared against the index.

    ``latest`` is the highest published version the manifest constraint
    allows; ``newest`` is the highest published version overall.
    """

    name: str
    constraint: str
    status: OutdatedStatus
    current: Optional[Version] = None
    latest: Optional[Version] = None
    newest: Optional[Version] = None
    dev: bool = False


class ProjectService:
    """Operations on one project directory.

    Collaborators default to the real implementations built from
    ``settings``; tests inject fakes.
    """

    def __init__(
        self,
        settings: Settings,
        index: Optional[IndexClient] = None,
        coordinator: Optional[FetchCoordinator] = None,
        installer: Optional[Installer] = None,
        cache: Optional[PackageCache] = None,
        store: Optional[LockfileStore] = None,
    ):
        self.settings = settings
        self.index = index or build_index_client(
            settings.index, TTLCache(default_ttl=Constants.INDEX_CACHE_TTL_SEC)
        )
        self.coordinator = coordinator or FetchCoordinator(
            max_concurrency=settings.max_concurrency,
            max_retries=settings.max_retries,
            timeout=settings.request_timeout,
            allow_unverified=settings.allow_unverified,
        )
        self.installer = installer or LoggingInstaller()
        self.cache = cache or PackageCache(settings.resolved_cache_dir)
        self.store = store or LockfileStore(
            settings.lockfile_path, wait_timeout=settings.lock_wait_timeout
        )

    def load_manifest(self) -> Manifest:
        return Manifest.load(self.settings.project_dir)

    def read_lockfile(self) -> Optional[Lockfile]:
        """Existing lockfile, or None when missing or unreadable as a lockfile."""
        try:
            return self.store.read()
        except LockfileCorruptError as exc:
            logger.warning("%s; ignoring it and resolving from scratch", exc)
            return None

    # ------------------------------------------------------------ pipelines

    def install(self) -> InstallResult:
        """Resolve, keeping locked versions that still satisfy the manifest."""
        with self.store.acquire():
            existing = self.read_lockfile()
            preferred = {e.name: e.version for e in existing} if existing else {}
            return self._sync(existing, preferred)

    def update(self, names: Optional[Iterable[str]] = None) -> InstallResult:
        """Move ``names`` (every package when empty) to their highest allowed versions."""
        targets = sorted(set(names or ()))
        with self.store.acquire():
            existing = self.read_lockfile()
            preferred: Dict[str, Version] = {}
            if targets and existing is not None:
                unknown = [n for n in targets if n not in existing]
                if unknown:
                    logger.warning("Not in lockfile, nothing to update: %s", ", ".join(unknown))
                preferred = {e.name: e.version for e in existing if e.name not in targets}
            result = self._sync(existing, preferred)
        for change in result.diff.changes:
            if change.kind is not ChangeKind.UNCHANGED:
                logger.info("%s", change)
        logger.info("Update: %s", result.diff.summary())
        return result

    def _sync(self, existing: Optional[Lockfile], preferred: Mapping[str, Version]) -> InstallResult:
        manifest = self.load_manifest()
        with Timer() as t:
            graph = resolve(manifest, self.index, include_dev=self.settings.include_dev,
                            preferred=preferred)
            plan = build_lock(graph, existing)
            results = self._fetch(plan, graph)
            lock = plan.finalize(
                {ref: r.checksum for ref, r in results.items()},
                source_urls={ref: r.url for ref, r in results.items()},
            )

            archives = {ref.name: r.data for ref, r in results.items()}
            for result in results.values():
                self.cache.store(result.data, result.checksum)
            for name in plan.reused:
                cached = self.cache.load(lock.entries[name].checksum)
                if cached is not None:
                    archives[name] = cached
                else:
                    logger.debug("No cached archive for %s", name)

            self.installer.install(lock, archives)
            written = self.store.commit(lock)

        diff = compute_diff(existing, lock)
        logger.info("Locked %d package(s) in %d ms (%s)", len(lock), t.duration_ms(), diff.summary())
        return InstallResult(
            lock=lock,
            diff=diff,
            fetched=sorted(results),
            reused=list(plan.reused),
            written=written,
            builds=native_builds(lock),
        )

    def source_for(self, ref: PackageRef, graph: ResolvedGraph) -> FetchSource:
        """Where to download ``ref``; a pre-built binary for the target wins when enabled."""
        node = graph.get(ref.name)
        if node is None:
            raise FetchError(f"'{ref.name}' is not part of the resolved graph", package=ref.name)
        meta = node.metadata
        if self.settings.prefer_binaries:
            artifact = meta.binary_urls.get(self.settings.target)
            if artifact is not None:
                return FetchSource(artifact.url, artifact.checksum)
        if not meta.source_url:
            raise FetchError(f"index lists no source URL for '{ref.name}' {ref.version}",
                             package=ref.name)
        return FetchSource(meta.source_url, meta.checksum)

    def _fetch(self, plan: LockPlan, graph: ResolvedGraph) -> Dict[PackageRef, FetchResult]:
        results: Dict[PackageRef, FetchResult] = {}
        remaining = []
        for ref in sorted(plan.to_fetch):
            source = self.source_for(ref, graph)
            data = self._cached(source)
            if data is not None:
                logger.debug("Using cached archive for %s", ref)
                results[ref] = FetchResult(ref, source.url, compute_checksum(data), data)
            else:
                remaining.append(ref)
        if remaining:
            results.update(
                self.coordinator.fetch_verified_sync(remaining, lambda r: self.source_for(r, graph))
            )
        return results

    def _cached(self, source: FetchSource) -> Optional[bytes]:
        if not source.expected_checksum:
            return None
        try:
            return self.cache.load(source.expected_checksum)
        except ValueError:
            return None

    # --------------------------------------------------------------- verify

    def verify(self) -> VerifyReport:
        """Check the lockfile against the manifest and the archive cache."""
        lock = self.store.read()
        if lock is None:
            raise LockfileError(
                f"no {Constants.LOCKFILE_FILE} found; run 'rocklock install' first"
            )
        manifest = self.load_manifest()
        report = VerifyReport(checked=len(lock))

        for _, name, text in manifest.requirements(include_dev=self.settings.include_dev):
            entry = lock.get(name)
            if entry is None:
                if not is_runtime_dependency(name):
                    report.issues.append(VerifyIssue(name, "declared in manifest but not locked"))
                continue
            if not parse_constraint(text, package=name).satisfied_by(entry.version):
                report.issues.append(
                    VerifyIssue(name, f"locked {entry.version} does not satisfy '{text}'")
                )

        for entry in lock:
            for dep, version in entry.dependencies:
                locked = lock.get(dep)
                if locked is None or locked.version != version:
                    report.issues.append(
                        VerifyIssue(entry.name, f"dependency {dep} {version} is not locked")
                    )
            if not self.cache.has(entry.checksum):
                report.issues.append(VerifyIssue(entry.name, "archive missing from cache"))
            elif not self.cache.verify(entry.checksum):
                report.issues.append(
                    VerifyIssue(entry.name, f"cached archive does not match {entry.checksum}")
                )

        if report.ok:
            logger.info("Verified %d package(s)", report.checked)
        else:
            for issue in report.issues:
                logger.error("%s", issue)
        return report

    # ------------------------------------------------------------- outdated

    def outdated(self) -> List[OutdatedPackage]:
        """Compare each direct dependency's locked version with the index."""
        lock = self.read_lockfile()
        manifest = self.load_manifest()
        rows: List[OutdatedPackage] = []
        for requirer, name, text in manifest.requirements(include_dev=self.settings.include_dev):
            if is_runtime_dependency(name):
                continue
            dev = requirer.endswith("(dev)")
            constraint = parse_constraint(text, package=name)
            entry = lock.get(name) if lock is not None else None
            current = entry.version if entry is not None else None

            published = [m.version for m in self.index.get_versions(name)]
            if not published:
                rows.append(OutdatedPackage(name, text, OutdatedStatus.NOT_FOUND, current, dev=dev))
                continue
            stable = [v for v in published
                      if not v.is_prerelease or constraint.mentions_prerelease]
            allowed = [v for v in stable if constraint.satisfied_by(v)]
            latest = max(allowed) if allowed else None
            newest = max(stable or published)

            if current is None:
                status = OutdatedStatus.NOT_INSTALLED
            elif latest is not None and current < latest:
                status = OutdatedStatus.OUTDATED
            else:
                status = OutdatedStatus.UP_TO_DATE
            rows.append(OutdatedPackage(name, text, status, current, latest, newest, dev))

        outdated = [row for row in rows if row.status is OutdatedStatus.OUTDATED]
        logger.info("%d of %d direct dependencies outdated", len(outdated), len(rows))
        return rows

    # ----------------------------------------------------------------- tree

    def tree(self) -> List[str]:
        """Render the locked dependency tree below the manifest's direct dependencies."""
        lock = self.store.read()
        if lock is None:
            raise LockfileError(
                f"no {Constants.LOCKFILE_FILE} found; run 'rocklock install' first"
            )
        manifest = self.load_manifest()
        roots = sorted({name for _, name, _ in
                        manifest.requirements(include_dev=self.settings.include_dev)
                        if name in lock})
        return render_tree(lock, roots, title=f"{manifest.name}@{manifest.version}")


def render_tree(lock: Lockfile, roots: Iterable[str], title: str = "") -> List[str]:
    lines: List[str] = [title] if title else []

    def walk(name: str, prefix: str, last: bool, path: Tuple[str, ...]) -> None:
        entry = lock.entries[name]
        branch = "`-- " if last else "|-- "
        suffix = " (cycle)" if name in path else ""
        lines.append(f"{prefix}{branch}{name}@{entry.version}{suffix}")
        if suffix:
            return
        children = [dep for dep, _ in entry.dependencies if dep in lock]
        child_prefix = prefix + ("    " if last else "|   ")
        for i, dep in enumerate(children):
            walk(dep, child_prefix, i == len(children) - 1, path + (name,))

    roots = list(roots)
    for i, name in enumerate(roots):
        walk(name, "", i == len(roots) - 1, ())
    return lines
