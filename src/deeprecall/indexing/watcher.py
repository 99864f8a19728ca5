"""
File Watcher

Watches the context folder (non-recursively) and reindexes files after they
stop changing. Each path has at most one pending debounce timer: a new event
cancels and replaces it, so a burst of writes produces a single reindex once
the quiet period has passed. Reindexing happens on the timer thread, never on
the observer thread that consumes filesystem events.
"""

import logging
import os
import threading
from typing import Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..config import DeepRecallConfig
from ..errors import DeepRecallError, FileAccessError
from .indexer import DocumentIndexer
from .models import Chunk


class IndexUpdateListener:
    """Receives the fresh chunk set of every file the watcher reindexes."""

    def on_index_update(self, file_path: str, chunks: List[Chunk]):
        raise NotImplementedError


class _ChangeHandler(FileSystemEventHandler):
    """Forwards create/write events for files to the watcher."""

    def __init__(self, watcher: "FileWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher.notify_change(os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher.notify_change(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent):
        # Editors that save via rename-into-place show up as a move
        if not event.is_directory:
            self.watcher.notify_change(os.fsdecode(event.dest_path))


class FileWatcher:
    """Debounced reindexing of changed files."""

    def __init__(self,
                 indexer: DocumentIndexer,
                 config: DeepRecallConfig,
                 logger: Optional[logging.Logger] = None):
        self.indexer = indexer
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.folder = os.path.abspath(config.folder)

        self._lock = threading.Lock()
        self._debounce: Dict[str, threading.Timer] = {}
        self._path_locks: Dict[str, threading.Lock] = {}
        self._listeners: List[IndexUpdateListener] = []
        self._observer: Optional[Observer] = None
        self._stopped = False

    def add_listener(self, listener: IndexUpdateListener):
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: IndexUpdateListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def start(self):
        """Begin observing the context folder."""
        if not os.path.isdir(self.folder):
            raise FileAccessError("Context folder does not exist", {"path": self.folder})

        with self._lock:
            if self._observer is not None:
                return
            self._stopped = False
            self._observer = Observer()
            self._observer.schedule(_ChangeHandler(self), self.folder, recursive=False)
            self._observer.start()

        self.logger.info("Watching context folder: %s", self.folder)

    def stop(self):
        """
        Cancel pending timers and stop consuming events.

        A reindex whose timer has already fired runs to completion.
        """
        with self._lock:
            self._stopped = True
            timers = list(self._debounce.values())
            self._debounce.clear()
            observer, self._observer = self._observer, None

        for timer in timers:
            timer.cancel()

        if observer is not None:
            observer.stop()
            observer.join()
            self.logger.info("Stopped watching %s", self.folder)

    def notify_change(self, file_path: str):
        """
        Record a create/write event for a path.

        Unsupported extensions are dropped here. Otherwise any pending timer for
        the path is replaced by a new one firing after the debounce period.
        """
        if not self.config.is_supported(file_path):
            return

        with self._lock:
            if self._stopped:
                return

            pending = self._debounce.get(file_path)
            if pending is not None:
                pending.cancel()
            else:
                self.logger.info("Detected change in file: %s", file_path)

            timer = threading.Timer(self.config.watcher.debounce_seconds, self._fire, args=(file_path,))
            timer.daemon = True
            self._debounce[file_path] = timer
            timer.start()

    def pending_paths(self) -> List[str]:
        with self._lock:
            return sorted(self._debounce)

    def _fire(self, file_path: str):
        with self._lock:
            # A timer cancelled after it started waking up must not run
            if self._debounce.get(file_path) is not threading.current_thread():
                return
            del self._debounce[file_path]
            path_lock = self._path_locks.setdefault(file_path, threading.Lock())

        # One reindex per path at a time, so results reach listeners in the
        # order the file was read
        with path_lock:
            with self._lock:
                listeners = list(self._listeners)
            self._reindex(file_path, listeners)

    def _reindex(self, file_path: str, listeners: List[IndexUpdateListener]):
        self.logger.info("Reindexing file: %s", file_path)
        try:
            chunks = self.indexer.index_file(file_path, force_reindex=True)
        except DeepRecallError as e:
            self.logger.error("Failed to reindex %s: %s", file_path, e)
            return
        except Exception:
            self.logger.exception("Unexpected error reindexing %s", file_path)
            return

        self.logger.info("Successfully reindexed: %s", file_path)

        for listener in listeners:
            try:
                listener.on_index_update(file_path, chunks)
            except Exception:
                self.logger.exception("Index update listener failed for %s", file_path)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
