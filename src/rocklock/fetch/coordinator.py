"""Bounded-concurrency archive downloads with checksum verification.

A batch either completes with every archive verified or is aborted as a
whole: the first checksum mismatch or exhausted retry sets a shared
cancellation flag, every other worker stops at its next I/O boundary and
drops whatever bytes it had buffered.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, Optional

import aiohttp

from ..common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from ..constants import Constants
from ..errors import ChecksumMismatchError, FetchError, TransientFetchError
from ..resolver.graph import PackageRef
from .checksum import compute_checksum, matches

logger = logging.getLogger(__name__)

Downloader = Callable[[str, asyncio.Event], Awaitable[bytes]]


class BatchState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class HTTPStatusError(Exception):
    """Non-200 response from an archive host."""

    def __init__(self, status: int, url: str):
        self.status = status
        self.url = url
        super().__init__(f"HTTP {status} from {safe_url(url)}")

    @property
    def retryable(self) -> bool:
        return self.status == 429 or self.status >= 500


class BatchCancelled(Exception):
    """Raised inside a worker that observed the cancellation flag."""


@dataclass(frozen=True)
class FetchSource:
    """Where to download a package from and what its bytes must hash to."""

    url: str
    expected_checksum: Optional[str]


@dataclass(frozen=True)
class FetchResult:
    ref: PackageRef
    url: str
    checksum: str
    data: bytes


SourceResolver = Callable[[PackageRef], FetchSource]

_RETRYABLE = (asyncio.TimeoutError, aiohttp.ClientConnectionError, aiohttp.ClientPayloadError,
              ConnectionError)


class FetchCoordinator:
    """Download a set of packages with at most ``max_concurrency`` in flight.

    One coordinator runs one batch at a time. ``downloader`` replaces the
    aiohttp transport; it receives the URL and the batch cancellation event.
    """

    def __init__(
        self,
        max_concurrency: int = Constants.FETCH_MAX_CONCURRENCY,
        max_retries: int = Constants.FETCH_MAX_RETRIES,
        backoff_base: float = Constants.FETCH_BACKOFF_BASE_SEC,
        backoff_max: float = Constants.FETCH_BACKOFF_MAX_SEC,
        timeout: float = Constants.REQUEST_TIMEOUT,
        allow_unverified: bool = False,
        downloader: Optional[Downloader] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.max_retries = max(0, max_retries)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.timeout = timeout
        self.allow_unverified = allow_unverified
        self._downloader = downloader
        self.state = BatchState.PENDING
        self.in_flight = 0
        self.peak_in_flight = 0
        self._cancel: Optional[asyncio.Event] = None
        self._failure: Optional[BaseException] = None

    # ------------------------------------------------------------------ API

    async def fetch_verified(self, refs: Iterable[PackageRef],
                             source_resolver: SourceResolver) -> Dict[PackageRef, FetchResult]:
        """Fetch and verify every ref; see the module docstring for failure semantics."""
        ordered = sorted(set(refs))
        self._reset()
        if not ordered:
            self.state = BatchState.COMPLETED
            return {}

        # Resolve every source before any transfer starts.
        try:
            sources = {ref: source_resolver(ref) for ref in ordered}
        except Exception:
            self.state = BatchState.ABORTED
            raise

        self.state = BatchState.RUNNING
        logger.info("Fetching %d package(s), up to %d at a time", len(ordered), self.max_concurrency)
        with Timer() as t:
            if self._downloader is not None:
                results = await self._run(ordered, sources, self._downloader)
            else:
                client_timeout = aiohttp.ClientTimeout(total=self.timeout)
                connector = aiohttp.TCPConnector(limit=self.max_concurrency)
                headers = {"User-Agent": Constants.USER_AGENT}
                async with aiohttp.ClientSession(timeout=client_timeout, connector=connector,
                                                 headers=headers) as session:
                    results = await self._run(ordered, sources, _session_downloader(session))
        self.state = BatchState.COMPLETED
        logger.info("Fetched %d package(s) in %d ms", len(results), t.duration_ms())
        return results

    async def fetch_all(self, refs: Iterable[PackageRef],
                        source_resolver: SourceResolver) -> Dict[PackageRef, bytes]:
        results = await self.fetch_verified(refs, source_resolver)
        return {ref: result.data for ref, result in results.items()}

    def fetch_all_sync(self, refs: Iterable[PackageRef],
                       source_resolver: SourceResolver) -> Dict[PackageRef, bytes]:
        return asyncio.run(self.fetch_all(refs, source_resolver))

    def fetch_verified_sync(self, refs: Iterable[PackageRef],
                            source_resolver: SourceResolver) -> Dict[PackageRef, FetchResult]:
        """Blocking wrapper around :meth:`fetch_verified` for synchronous callers."""
        return asyncio.run(self.fetch_verified(refs, source_resolver))

    # ------------------------------------------------------------ internals

    def _reset(self) -> None:
        self.state = BatchState.PENDING
        self.in_flight = 0
        self.peak_in_flight = 0
        self._failure = None

    async def _run(self, ordered, sources, download: Downloader) -> Dict[PackageRef, FetchResult]:
        self._cancel = asyncio.Event()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.ensure_future(self._worker(ref, sources[ref], download, semaphore))
            for ref in ordered
        ]
        try:
            results = await asyncio.gather(*tasks)
        except Exception as exc:
            self._cancel.set()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self.state = BatchState.ABORTED
            failure = self._failure or exc
            logger.error("Fetch batch aborted: %s", failure)
            if failure is exc:
                raise
            raise failure from None
        return {result.ref: result for result in results}

    def _fail(self, exc: BaseException) -> BaseException:
        if self._failure is None:
            self._failure = exc
        self._cancel.set()
        return exc

    def _check_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise BatchCancelled()

    async def _worker(self, ref: PackageRef, source: FetchSource, download: Downloader,
                      semaphore: asyncio.Semaphore) -> FetchResult:
        async with semaphore:
            self._check_cancelled()
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                data = await self._download_with_retry(ref, source.url, download)
            finally:
                self.in_flight -= 1

        # A batch cancelled while this transfer finished discards its bytes.
        self._check_cancelled()
        return self._verify(ref, source, data)

    async def _download_with_retry(self, ref: PackageRef, url: str, download: Downloader) -> bytes:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            self._check_cancelled()
            try:
                return await download(url, self._cancel)
            except HTTPStatusError as exc:
                if not exc.retryable:
                    raise self._fail(FetchError(
                        f"failed to download '{ref.name}' {ref.version}: {exc}", package=ref.name
                    )) from exc
                reason = str(exc)
            except _RETRYABLE as exc:
                reason = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__

            if attempt == attempts:
                raise self._fail(TransientFetchError(ref.name, safe_url(url), attempts, reason))
            delay = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
            logger.warning(
                "Retrying %s (attempt %d/%d) in %.2fs: %s",
                ref, attempt + 1, attempts, delay, reason,
                extra=extra_context(
                    event="retry", component="fetch", package=ref.name, attempt=attempt,
                ),
            )
            await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    def _verify(self, ref: PackageRef, source: FetchSource, data: bytes) -> FetchResult:
        checksum = compute_checksum(data)
        expected = source.expected_checksum
        if not expected:
            if not self.allow_unverified:
                raise self._fail(FetchError(
                    f"index declares no checksum for '{ref.name}' {ref.version}; refusing to lock it",
                    package=ref.name,
                ))
            logger.warning("No declared checksum for %s; recording %s", ref, checksum)
        else:
            try:
                ok, actual = matches(data, expected)
            except ValueError as exc:
                raise self._fail(FetchError(
                    f"invalid declared checksum for '{ref.name}' {ref.version}: {exc}",
                    package=ref.name,
                )) from exc
            if not ok:
                raise self._fail(ChecksumMismatchError(ref.name, str(ref.version), expected, actual))

        if is_debug_enabled(logger):
            logger.debug(
                "Verified %s (%d bytes)",
                ref,
                len(data),
                extra=extra_context(event="verified", component="fetch", package=ref.name,
                                    url=safe_url(source.url)),
            )
        return FetchResult(ref=ref, url=source.url, checksum=checksum, data=data)


def _session_downloader(session: aiohttp.ClientSession) -> Downloader:
    async def download(url: str, cancel: asyncio.Event) -> bytes:
        async with session.get(url) as response:
            if response.status != 200:
                raise HTTPStatusError(response.status, url)
            buffer = bytearray()
            async for chunk in response.content.iter_chunked(Constants.FETCH_CHUNK_SIZE):
                if cancel.is_set():
                    raise BatchCancelled()
                buffer.extend(chunk)
            return bytes(buffer)

    return download
