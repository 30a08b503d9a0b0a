"""Download scheduling: a sequential lane for binaries, a concurrent lane for images.

Every download streams into ``<destination>.part`` and is renamed into place
only once it is complete and its MD5 digest (when expected) matches, so a
failed or tampered download never shows up under the final name.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from modsync.exceptions import IntegrityError, ModSyncError, NotFoundError, TransientNetworkError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    from modsync.filesystem.manifest_store import ManifestStore

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class DownloadRequest:
    """What to fetch, where to put it, and the MD5 digest it must have (if known)."""

    source_url: str
    destination: Path
    expected_md5: str | None = None


@dataclass(frozen=True)
class DownloadResult:
    """Completion of a download: a saved path or the reason it failed."""

    request: DownloadRequest
    path: Path | None = None
    error: ModSyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.path is not None


class DownloadHandle:
    """Completion channel for one submitted download.

    ``placeholder`` is available immediately; the result arrives later through
    :meth:`wait` or a callback registered with :meth:`add_done_callback`.
    """

    def __init__(self, request: DownloadRequest, placeholder: bytes | None = None) -> None:
        self.request = request
        self.placeholder = placeholder
        self._future: asyncio.Future[DownloadResult] = asyncio.get_running_loop().create_future()

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> DownloadResult:
        """Return the result. Raises ``asyncio.InvalidStateError`` while still running."""
        return self._future.result()

    async def wait(self) -> DownloadResult:
        return await asyncio.shield(self._future)

    def add_done_callback(self, callback: Callable[[DownloadResult], None]) -> None:
        self._future.add_done_callback(lambda fut: callback(fut.result()))

    def _resolve(self, result: DownloadResult) -> None:
        if not self._future.done():
            self._future.set_result(result)


def _part_path(destination: Path) -> Path:
    return destination.with_name(destination.name + ".part")


async def fetch_to_file(client: httpx.AsyncClient, request: DownloadRequest) -> DownloadResult:
    """Stream ``request.source_url`` to disk, verifying the MD5 digest if one is expected.

    Failures are returned in the result, never raised.
    """
    destination = request.destination
    part = _part_path(destination)
    digest = hashlib.md5(usedforsecurity=False)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        async with client.stream("GET", request.source_url) as resp:
            if resp.status_code == 404:
                raise NotFoundError(f"Download source not found: {request.source_url}")
            if resp.status_code >= 400:
                raise TransientNetworkError(
                    f"Download of {request.source_url} failed with HTTP {resp.status_code}",
                    status_code=resp.status_code,
                )
            with open(part, "wb") as f:
                async for chunk in resp.aiter_bytes(CHUNK_SIZE):
                    digest.update(chunk)
                    f.write(chunk)

        actual = digest.hexdigest()
        if request.expected_md5 and actual.lower() != request.expected_md5.lower():
            raise IntegrityError(request.source_url, request.expected_md5, actual)
        os.replace(part, destination)
    except httpx.HTTPError as exc:
        part.unlink(missing_ok=True)
        error = TransientNetworkError(f"Download of {request.source_url} failed: {exc}")
        logger.warning("%s", error)
        return DownloadResult(request=request, error=error)
    except OSError as exc:
        part.unlink(missing_ok=True)
        error = TransientNetworkError(f"Could not write {destination}: {exc}")
        logger.error("%s", error)
        return DownloadResult(request=request, error=error)
    except IntegrityError as exc:
        part.unlink(missing_ok=True)
        logger.error("%s", exc)
        return DownloadResult(request=request, error=exc)
    except ModSyncError as exc:
        part.unlink(missing_ok=True)
        logger.warning("%s", exc)
        return DownloadResult(request=request, error=exc)

    logger.info("Downloaded %s -> %s", request.source_url, destination)
    return DownloadResult(request=request, path=destination)


async def _fetch_resolving(
    fetch: Callable[[DownloadRequest], Awaitable[DownloadResult]], handle: DownloadHandle
) -> None:
    """Run ``fetch`` for ``handle`` and resolve it whatever happens."""
    request = handle.request
    try:
        result = await fetch(request)
    except asyncio.CancelledError:
        handle._resolve(
            DownloadResult(request=request, error=ModSyncError("Download cancelled"))
        )
        raise
    except Exception as exc:
        logger.exception("Unexpected failure downloading %s", request.source_url)
        result = DownloadResult(
            request=request,
            error=ModSyncError(f"Download of {request.source_url} failed: {exc}"),
        )
    handle._resolve(result)


class SequentialLane:
    """Runs downloads one at a time, in submission order."""

    def __init__(self, fetch: Callable[[DownloadRequest], Awaitable[DownloadResult]]) -> None:
        self._fetch = fetch
        self._queue: asyncio.Queue[DownloadHandle] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, request: DownloadRequest) -> DownloadHandle:
        handle = DownloadHandle(request)
        self._queue.put_nowait(handle)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name="modsync-queued-downloads")
        return handle

    async def _drain(self) -> None:
        while True:
            handle = await self._queue.get()
            try:
                await _fetch_resolving(self._fetch, handle)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    async def close(self) -> None:
        """Stop the worker; downloads still queued resolve as cancelled."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        while not self._queue.empty():
            handle = self._queue.get_nowait()
            handle._resolve(
                DownloadResult(request=handle.request, error=ModSyncError("Download cancelled"))
            )
            self._queue.task_done()


class ConcurrentLane:
    """Runs every submitted download immediately, without a concurrency bound.

    At most one download per destination is in flight; submitting the same
    destination again returns the handle already running for it.
    """

    def __init__(self, fetch: Callable[[DownloadRequest], Awaitable[DownloadResult]]) -> None:
        self._fetch = fetch
        self._tasks: set[asyncio.Task[None]] = set()
        self._in_flight: dict[Path, DownloadHandle] = {}

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def in_flight(self, destination: Path) -> DownloadHandle | None:
        return self._in_flight.get(destination)

    def submit(self, request: DownloadRequest, placeholder: bytes | None = None) -> DownloadHandle:
        existing = self._in_flight.get(request.destination)
        if existing is not None:
            logger.debug("Download to %s already in flight", request.destination)
            return existing
        handle = DownloadHandle(request, placeholder=placeholder)
        self._in_flight[request.destination] = handle
        task = asyncio.create_task(self._run(handle))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    async def _run(self, handle: DownloadHandle) -> None:
        try:
            await _fetch_resolving(self._fetch, handle)
        finally:
            self._in_flight.pop(handle.request.destination, None)

    async def join(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))


class DownloadCoordinator:
    """Owns both download lanes and records finished images in the image index."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        manifest_store: ManifestStore,
        *,
        fetch: Callable[[DownloadRequest], Awaitable[DownloadResult]] | None = None,
    ) -> None:
        self.client = client
        self.manifest_store = manifest_store
        fetch = fetch or (lambda request: fetch_to_file(self.client, request))
        self.queued = SequentialLane(fetch)
        self.concurrent = ConcurrentLane(fetch)

    def submit_binary(self, request: DownloadRequest) -> DownloadHandle:
        """Queue a large artifact download behind any already queued."""
        logger.debug("Queueing binary download %s", request.source_url)
        return self.queued.submit(request)

    def submit_image(self, request: DownloadRequest, placeholder: bytes = b"") -> DownloadHandle:
        """Start an image download now; the handle carries ``placeholder`` until it lands.

        The image index is updated only when the download succeeds. A request
        for a destination already downloading shares the running handle.
        """
        existing = self.image_in_flight(request.destination)
        if existing is not None:
            return existing
        handle = self.concurrent.submit(request, placeholder=placeholder)
        handle.add_done_callback(self._record_image)
        return handle

    def image_in_flight(self, destination: Path) -> DownloadHandle | None:
        return self.concurrent.in_flight(destination)

    def _record_image(self, result: DownloadResult) -> None:
        if result.ok and result.path is not None:
            self.manifest_store.record_image(result.request.source_url, result.path)

    async def join(self) -> None:
        """Wait until both lanes are idle."""
        await asyncio.gather(self.queued.join(), self.concurrent.join())

    async def close(self) -> None:
        await self.queued.close()
