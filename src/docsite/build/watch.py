"""File change events, debouncing and the incremental build coordinator."""

from __future__ import annotations

import enum
import logging
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Tuple

from docsite.utils.files import FileStamp, MARKDOWN_SUFFIXES, snapshot_tree

if TYPE_CHECKING:
    from docsite.build.orchestrator import BuildResult, SiteBuilder

LOGGER = logging.getLogger(__name__)


class ChangeKind(str, enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    path: Path
    kind: ChangeKind


def coalesce(events: Iterable[ChangeEvent]) -> List[ChangeEvent]:
    """Collapse a burst of events to one per path, sorted by path.

    The latest kind wins, except that a modification of a file created in the
    same burst is still reported as a creation.
    """
    latest: Dict[Path, ChangeKind] = {}
    for event in events:
        previous = latest.get(event.path)
        if previous is ChangeKind.CREATED and event.kind is ChangeKind.MODIFIED:
            continue
        latest[event.path] = event.kind
    return [ChangeEvent(path, kind) for path, kind in sorted(latest.items())]


def poll_changes(
    root: Path,
    previous: Dict[Path, FileStamp],
    *,
    suffixes: Iterable[str] = MARKDOWN_SUFFIXES,
) -> Tuple[List[ChangeEvent], Dict[Path, FileStamp]]:
    """Diff the current tree against ``previous`` and return events plus the new snapshot."""
    current = snapshot_tree(root, suffixes=suffixes)
    events: List[ChangeEvent] = []
    for path, stamp in current.items():
        if path not in previous:
            events.append(ChangeEvent(path, ChangeKind.CREATED))
        elif previous[path] != stamp:
            events.append(ChangeEvent(path, ChangeKind.MODIFIED))
    for path in previous:
        if path not in current:
            events.append(ChangeEvent(path, ChangeKind.DELETED))
    return sorted(events, key=lambda event: event.path), current


class BuildCoordinator:
    """Single consumer of change events that schedules incremental builds.

    Events are debounced over ``debounce`` seconds. If another event arrives
    while a build is running, that build's result is discarded as stale and a
    new build starts once it finishes; builds are never interrupted.
    """

    def __init__(
        self,
        builder: "SiteBuilder",
        *,
        debounce: float = 0.2,
        on_result: Callable[["BuildResult"], None] | None = None,
    ) -> None:
        self.builder = builder
        self.debounce = debounce
        self.on_result = on_result
        self.published: List["BuildResult"] = []
        self.discarded = 0
        self._queue: "queue.Queue[ChangeEvent | None]" = queue.Queue()
        self._lock = threading.Lock()
        self._generation = 0
        self._thread: threading.Thread | None = None

    def submit(self, event: ChangeEvent) -> None:
        with self._lock:
            self._generation += 1
        self._queue.put(event)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="docsite-coordinator", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 30.0) -> None:
        """Finish pending builds, then stop the consumer thread."""
        self._queue.put(None)
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                LOGGER.warning("Coordinator did not stop within %ss", timeout)
            self._thread = None

    def _collect(self, first: ChangeEvent) -> Tuple[List[ChangeEvent], bool]:
        batch = [first]
        while True:
            try:
                item = self._queue.get(timeout=self.debounce)
            except queue.Empty:
                return batch, False
            if item is None:
                return batch, True
            batch.append(item)

    def _run(self) -> None:
        stopping = False
        while True:
            try:
                item = self._queue.get(timeout=self.debounce if stopping else None)
            except queue.Empty:
                break
            if item is None:
                stopping = True
                continue
            batch, saw_stop = self._collect(item)
            stopping = stopping or saw_stop
            self._process(coalesce(batch))

    def _process(self, events: List[ChangeEvent]) -> None:
        with self._lock:
            generation = self._generation
        LOGGER.info("Rebuilding after %d change(s)", len(events))
        try:
            result = self.builder.rebuild(events)
        except Exception:
            LOGGER.exception("Incremental build crashed")
            return
        with self._lock:
            stale = generation != self._generation
        if stale:
            self.discarded += 1
            LOGGER.info("Discarding stale build result; newer changes are pending")
            return
        self.published.append(result)
        if self.on_result is not None:
            self.on_result(result)


def watch(
    root: Path,
    coordinator: BuildCoordinator,
    *,
    interval: float = 0.5,
    stop: threading.Event | None = None,
    extra_files: Iterable[Path] = (),
) -> None:
    """Poll ``root`` for changes and feed them to ``coordinator`` until ``stop`` is set."""
    stop = stop or threading.Event()
    tracked = [Path(path) for path in extra_files]
    snapshot = snapshot_tree(root)
    extra = {path: _stamp(path) for path in tracked}
    while not stop.wait(interval):
        events, snapshot = poll_changes(root, snapshot)
        for path in tracked:
            stamp = _stamp(path)
            if stamp != extra[path]:
                extra[path] = stamp
                events.append(ChangeEvent(path, ChangeKind.MODIFIED))
        for event in events:
            LOGGER.debug("%s %s", event.kind.value, event.path)
            coordinator.submit(event)


def _stamp(path: Path) -> FileStamp | None:
    try:
        stat = path.stat()
    except OSError:
        return None
    return (stat.st_mtime, stat.st_size)
