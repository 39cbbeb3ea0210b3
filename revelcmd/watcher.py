"""Watch source trees and tell listeners when something relevant changed."""

from __future__ import annotations

import contextlib
import errno
import logging
import os
import queue
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import SourceError

log = logging.getLogger("revelcmd")

# Event kinds that never signal a change to a file's content or presence.
_IGNORED_EVENTS = frozenset({"opened", "closed_no_write"})
_POLL_SECONDS = 0.1


class Listener(ABC):
    """Receiver of file system change notifications."""

    @abstractmethod
    def refresh(self) -> SourceError | None:
        """Rebuild after a change; return an error to show the user, or None."""


class DiscerningListener(Listener):
    """A listener that chooses which directories and files are watched."""

    def watch_dir(self, path: str) -> bool:
        """Return False to leave the directory and everything below it unwatched."""
        return True

    def watch_file(self, basename: str) -> bool:
        """Return False to ignore changes to this file."""
        return True


def rebuild_required(path: str, is_chmod: bool, listener: Listener) -> bool:
    """Decide whether a change to ``path`` should trigger a refresh."""
    if os.path.basename(path).startswith("."):
        return False
    if isinstance(listener, DiscerningListener):
        if not listener.watch_file(path) or is_chmod:
            return False
    return True


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class _QueueHandler(FileSystemEventHandler):
    """Forward file system events into a queue, optionally for one file only."""

    def __init__(self, events: queue.Queue[tuple[str, bool]], only: str | None = None) -> None:
        super().__init__()
        self._events = events
        self._only = only

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _IGNORED_EVENTS:
            return
        paths = [os.fsdecode(event.src_path)]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(os.fsdecode(dest))
        for path in paths:
            if self._only is None or os.path.abspath(path) == self._only:
                self._events.put((path, False))


@dataclass
class _Entry:
    listener: Listener
    events: queue.Queue[tuple[str, bool]]
    observer: Any
    watched: list[str] = field(default_factory=list)


def _watched_dirs(root: str, listener: Listener) -> Iterator[str]:
    discerning = isinstance(listener, DiscerningListener)
    if discerning and not listener.watch_dir(root):
        return
    yield root
    for dirpath, dirnames, _files in os.walk(root, followlinks=True):
        kept = []
        for name in sorted(dirnames):
            path = os.path.join(dirpath, name)
            if discerning and not listener.watch_dir(path):
                continue
            kept.append(name)
            yield path
        dirnames[:] = kept


class Watcher:
    """Registers listeners on directory trees and forwards their change events."""

    def __init__(
        self,
        eager_refresh: bool = False,
        refresh_interval: float = 1.0,
        serial: bool = False,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.eager_refresh = eager_refresh
        self.refresh_interval = refresh_interval
        self.serial = serial
        self.force_refresh = True
        self.last_error = -1
        self._observer_factory = observer_factory
        self._entries: list[_Entry] = []
        self._notify_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._deadline: float | None = None
        self._waiters: list[Future[SourceError | None]] = []
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], dev_mode: bool, eager_refresh: bool = False, **kwargs: Any
    ) -> Watcher:
        """Create a watcher from application settings."""
        delay_ms = int(config.get("watch.rebuild.delay", 1000))
        eager = eager_refresh or (
            dev_mode
            and _as_bool(config.get("watch", True))
            and str(config.get("watch.mode", "normal")) == "eager"
        )
        return cls(eager_refresh=eager, refresh_interval=delay_ms / 1000, **kwargs)

    @property
    def watched(self) -> list[str]:
        """Every directory or file currently being watched."""
        return [path for entry in self._entries for path in entry.watched]

    def listen(self, listener: Listener, *roots: str | os.PathLike[str]) -> None:
        """Watch the given roots (recursively for directories) on behalf of ``listener``."""
        events: queue.Queue[tuple[str, bool]] = queue.Queue()
        observer = self._observer_factory()
        watched: list[str] = []
        for root in roots:
            path = os.fspath(root)
            if os.path.islink(path):
                path = os.path.realpath(path)
            if not os.path.exists(path):
                raise FileNotFoundError(
                    errno.ENOENT, "Watcher: Failed to stat watched path", path
                )
            if not os.path.isdir(path):
                file_path = os.path.abspath(path)
                observer.schedule(
                    _QueueHandler(events, file_path), os.path.dirname(file_path), recursive=False
                )
                watched.append(file_path)
                continue
            for directory in _watched_dirs(path, listener):
                observer.schedule(_QueueHandler(events), directory, recursive=False)
                watched.append(directory)

        observer.start()
        entry = _Entry(listener, events, observer, watched)
        self._entries.append(entry)

        if self.eager_refresh:
            thread = threading.Thread(
                target=self._notify_when_updated, args=(entry,), daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def _notify_when_updated(self, entry: _Entry) -> None:
        while not self._stop.is_set():
            try:
                path, is_chmod = entry.events.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            if not rebuild_required(path, is_chmod, entry.listener):
                continue
            if self.serial:
                with self._notify_lock:
                    err = entry.listener.refresh()
                if err is not None:
                    log.error("Watcher: Listener refresh reported error: %s", err)
            else:
                threading.Thread(
                    target=self._refresh_in_background, args=(entry.listener,), daemon=True
                ).start()

    def _refresh_in_background(self, listener: Listener) -> None:
        err = self._notify_in_process(listener)
        if err is not None:
            log.error("failed to notify: %s", err)

    def notify(self) -> SourceError | None:
        """Forward pending changes to listeners and return the first error, if any."""
        guard = self._notify_lock if self.serial else contextlib.nullcontext()
        with guard:
            for index, entry in enumerate(self._entries):
                refresh = False
                while True:
                    try:
                        path, is_chmod = entry.events.get_nowait()
                    except queue.Empty:
                        break
                    if rebuild_required(path, is_chmod, entry.listener):
                        refresh = True

                log.info(
                    "Watcher:Notify refresh state index=%d last_error=%d force=%s refresh=%s",
                    index, self.last_error, self.force_refresh, refresh,
                )
                if self.force_refresh or refresh or self.last_error == index:
                    if self.serial:
                        err = entry.listener.refresh()
                    else:
                        err = self._notify_in_process(entry.listener)
                    if err is not None:
                        self.last_error = index
                        self.force_refresh = True
                        return err
                    self.last_error = -1
                    self.force_refresh = False
        return None

    def _notify_in_process(self, listener: Listener) -> SourceError | None:
        """Debounce refreshes: callers arriving while a refresh is pending share its result."""
        waiter: Future[SourceError | None] | None = None
        with self._timer_lock:
            self.force_refresh = True
            if self._deadline is not None:
                log.info("Found existing timer running, resetting")
                self._deadline = time.monotonic() + self.refresh_interval
                waiter = Future()
                self._waiters.append(waiter)
            else:
                self._deadline = time.monotonic() + self.refresh_interval

        if waiter is not None:
            return waiter.result()

        log.info("Waiting for refresh timer to expire")
        while True:
            with self._timer_lock:
                remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(remaining)

        with self._timer_lock:
            err: SourceError | None = None
            try:
                err = listener.refresh()
            finally:
                for pending in self._waiters:
                    pending.set_result(err)
                self._waiters.clear()
                self._deadline = None
            if err is not None:
                log.info("Watcher: Recording error last build, setting rebuild on: %s", err)
            else:
                self.last_error = -1
                self.force_refresh = False
            log.info("Rebuilt, result %s", err)
        return err

    def close(self) -> None:
        """Stop watching and wait for the background threads to finish."""
        self._stop.set()
        for entry in self._entries:
            entry.observer.stop()
        for entry in self._entries:
            entry.observer.join()
        for thread in self._threads:
            thread.join(timeout=1.0)
        self._threads.clear()

    def __enter__(self) -> Watcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()