"""Background prefetching of flow artifacts around the selected frame."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from functools import lru_cache
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple, Union

from logging_config import log_elapsed
from models.records import Artifact, ArtifactRef, DownloadStatus, MatrixPair
from settings import get_settings
from storage.flow_store import build_default_flow_store

logger = logging.getLogger(__name__)


class ArtifactSource(Protocol):
    def list_artifacts(self) -> List[ArtifactRef]:
        ...

    def download(self, artifact_id: str) -> MatrixPair:
        ...


@dataclass(frozen=True)
class FlowSnapshot:
    """Immutable view of the artifact list at one point in time."""

    version: int
    active_index: int
    window: Tuple[int, int]
    artifacts: Tuple[Artifact, ...]

    def __len__(self) -> int:
        return len(self.artifacts)

    def count(self, status: DownloadStatus) -> int:
        return sum(1 for artifact in self.artifacts if artifact.status is status)


Observer = Callable[[FlowSnapshot, int], None]


def window_bounds(active_index: int, length: int, window_size: int) -> Tuple[int, int]:
    """Half-open index range of the download window around ``active_index``.

    The window starts ``window_size // 2`` before the active index and is
    shifted, never shrunk, to stay inside ``[0, length)``, so it always covers
    ``min(window_size, length)`` artifacts.
    """
    if length <= 0:
        return 0, 0
    size = min(window_size, length)
    start = active_index - window_size // 2
    start = max(0, min(start, length - size))
    return start, start + size


def _clamp(index: int, length: int) -> int:
    if length <= 0:
        return 0
    return max(0, min(index, length - 1))


class WindowedPrefetcher:
    """Keeps the artifacts near the active index downloaded.

    Downloads run on a bounded thread pool. Each completed download swaps in a
    new artifact tuple that reuses every unchanged artifact object, then
    observers receive the new snapshot with the index that changed. An
    in-flight set keyed by artifact id prevents duplicate downloads when the
    active index moves faster than downloads finish.
    """

    def __init__(
        self,
        store: ArtifactSource,
        window_size: int = 4,
        workers: Optional[int] = None,
    ) -> None:
        if window_size <= 0:
            raise ValueError("window_size must be positive.")
        self.store = store
        self.window_size = window_size
        self.executor = ThreadPoolExecutor(
            max_workers=workers or window_size, thread_name_prefix="flow-prefetch"
        )
        self._lock = Lock()
        self._artifacts: Tuple[Artifact, ...] = ()
        self._positions: Dict[str, int] = {}
        self._active_index = 0
        self._version = 0
        self._in_flight: Dict[str, Future[None]] = {}
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> None:
        with self._lock:
            self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def load(self) -> FlowSnapshot:
        """List the store and install its artifacts, oldest first."""
        return self.set_artifacts(self.store.list_artifacts())

    def set_artifacts(self, artifacts: Iterable[Union[ArtifactRef, Artifact]]) -> FlowSnapshot:
        """Replace the artifact list and start downloads for the current window.

        Listed refs whose id is already downloaded keep their matrix.
        """
        with self._lock:
            ready = {
                artifact.id: artifact
                for artifact in self._artifacts
                if artifact.status is DownloadStatus.ready
            }
            items = tuple(
                item if isinstance(item, Artifact) else ready.get(item.id, Artifact.from_ref(item))
                for item in artifacts
            )
            self._artifacts = items
            self._positions = {artifact.id: index for index, artifact in enumerate(items)}
            self._active_index = _clamp(self._active_index, len(items))
            self._version += 1
            self._schedule_locked()
            snapshot = self._snapshot_locked()
        logger.info("Installed %d flow artifacts", len(snapshot), extra={"index": snapshot.active_index})
        return snapshot

    def set_active_index(self, index: int) -> FlowSnapshot:
        """Move the window; out-of-range indices are clamped to the list."""
        with self._lock:
            self._active_index = _clamp(index, len(self._artifacts))
            self._schedule_locked()
            return self._snapshot_locked()

    def snapshot(self) -> FlowSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def get_artifact(self, index: int) -> Artifact:
        with self._lock:
            if not 0 <= index < len(self._artifacts):
                raise IndexError(f"Flow artifact {index} out of range.")
            return self._artifacts[index]

    def wait_for_downloads(self, timeout: Optional[float] = None) -> bool:
        """Block until no download is in flight; return ``False`` on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                futures = list(self._in_flight.values())
            if not futures:
                return True
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            wait(futures, timeout=remaining)

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)
        # Cancelled downloads never reach the cleanup in ``_download``.
        with self._lock:
            for artifact_id, future in list(self._in_flight.items()):
                if future.cancelled():
                    del self._in_flight[artifact_id]

    def _snapshot_locked(self) -> FlowSnapshot:
        return FlowSnapshot(
            version=self._version,
            active_index=self._active_index,
            window=window_bounds(self._active_index, len(self._artifacts), self.window_size),
            artifacts=self._artifacts,
        )

    def _schedule_locked(self) -> None:
        start, stop = window_bounds(self._active_index, len(self._artifacts), self.window_size)
        for index in range(start, stop):
            artifact = self._artifacts[index]
            if artifact.status is not DownloadStatus.pending or artifact.id in self._in_flight:
                continue
            logger.debug(
                "Queueing flow artifact download",
                extra={"artifact_id": artifact.id, "index": index},
            )
            self._in_flight[artifact.id] = self.executor.submit(self._download, artifact.id)

    def _download(self, artifact_id: str) -> None:
        try:
            try:
                with log_elapsed(
                    logger, "Downloaded flow artifact", level=logging.INFO, artifact_id=artifact_id
                ):
                    matrix: Optional[MatrixPair] = self.store.download(artifact_id)
                status = DownloadStatus.ready
            except Exception as exc:  # one bad artifact must not stop the window
                logger.warning(
                    "Flow artifact download failed",
                    extra={"artifact_id": artifact_id, "reason": str(exc) or type(exc).__name__},
                )
                matrix, status = None, DownloadStatus.failed
            self._apply(artifact_id, status, matrix)
        finally:
            with self._lock:
                self._in_flight.pop(artifact_id, None)

    def _apply(
        self, artifact_id: str, status: DownloadStatus, matrix: Optional[MatrixPair]
    ) -> None:
        with self._lock:
            index = self._positions.get(artifact_id)
            # The list may have been replaced while the download ran.
            if index is None or self._artifacts[index].status is not DownloadStatus.pending:
                logger.debug(
                    "Discarding stale flow download",
                    extra={"artifact_id": artifact_id, "status": status.value},
                )
                return
            artifacts = list(self._artifacts)
            artifacts[index] = replace(artifacts[index], status=status, matrix=matrix)
            self._artifacts = tuple(artifacts)
            self._version += 1
            snapshot = self._snapshot_locked()
            observers = list(self._observers)

        for observer in observers:
            try:
                observer(snapshot, index)
            except Exception:
                logger.exception("Flow observer failed", extra={"index": index})


@lru_cache
def build_default_prefetcher(window_size: Optional[int] = None) -> WindowedPrefetcher:
    """Factory that wires the prefetcher to the default flow bucket."""
    settings = get_settings()
    return WindowedPrefetcher(
        store=build_default_flow_store(),
        window_size=window_size or settings.prefetch_window_size,
        workers=settings.prefetch_workers,
    )
