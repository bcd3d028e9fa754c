#!/usr/bin/env python3
"""
Storage Monitor for the Log Upload Strategy
Watches a log directory and reports its status

Uses watchdog to observe filesystem events. Each event triggers a fresh
StorageStatus snapshot (matching file count and total bytes) that is pushed
to registered listeners, typically UploadDriver.on_status_changed.
"""

import fnmatch
import logging
import threading
from pathlib import Path
from typing import Callable, List

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from upload_strategy.decision import StorageStatus

logger = logging.getLogger(__name__)


class DirectoryStatusMonitor:
    """
    Reports the status of a log directory.

    The monitor only reads the directory. It never deletes or moves files.

    Example:
        >>> monitor = DirectoryStatusMonitor('/var/log/app', pattern='*.log')
        >>> monitor.add_listener(driver.on_status_changed)
        >>> monitor.start()
        >>> monitor.get_status()
        StorageStatus(record_count=3, total_bytes=52428800, extra={...})
        >>> monitor.stop()

    Attributes:
        directory (Path): Directory being monitored
        pattern (str): Glob pattern files must match
        recursive (bool): Whether subdirectories are included
    """

    def __init__(self, directory: str, pattern: str = "*", recursive: bool = False):
        """
        Initialize directory monitor.

        Args:
            directory: Directory path to monitor
            pattern: Glob pattern for log files (default: all files)
            recursive: Include subdirectories

        Note:
            Directory will be created if it doesn't exist
        """
        self.directory = Path(directory)
        self.pattern = pattern
        self.recursive = recursive
        self._listeners: List[Callable[[StorageStatus], object]] = []
        self._lock = threading.Lock()

        self.directory.mkdir(parents=True, exist_ok=True)

        self.observer = None
        self.handler = StatusChangeHandler(self._on_file_event)
        self._running = False

        logger.info(f"Initialized monitoring {self.directory} (pattern: {pattern})")

    def add_listener(self, listener: Callable[[StorageStatus], object]):
        """Register a callable receiving a StorageStatus on every change."""
        self._listeners.append(listener)

    def get_status(self) -> StorageStatus:
        """
        Compute the current directory status.

        Files that vanish between listing and stat are skipped.

        Returns:
            StorageStatus: record_count = matching files, total_bytes = their size
        """
        files = self.directory.rglob(self.pattern) if self.recursive else self.directory.glob(self.pattern)

        count = 0
        total = 0
        for file_path in files:
            try:
                if not file_path.is_file():
                    continue
                total += file_path.stat().st_size
                count += 1
            except (OSError, FileNotFoundError) as e:
                logger.debug(f"Error checking file {file_path}: {e}")

        return StorageStatus(
            record_count=count,
            total_bytes=total,
            extra={"directory": str(self.directory)},
        )

    def start(self):
        """
        Start watching the directory.

        Note:
            Safe to call multiple times
        """
        if self._running:
            return

        self.observer = Observer()
        self.observer.schedule(self.handler, str(self.directory), recursive=self.recursive)
        self.observer.start()
        self._running = True
        logger.info("Started monitoring")

    def stop(self):
        """Stop watching the directory."""
        if not self._running:
            return

        self._running = False
        self.observer.stop()
        self.observer.join()
        self.observer = None
        logger.info("Stopped monitoring")

    def _matches(self, path: str) -> bool:
        return fnmatch.fnmatch(Path(path).name, self.pattern)

    def _on_file_event(self, *paths: str):
        """Push a fresh status to listeners when any of `paths` matches."""
        if not any(self._matches(path) for path in paths):
            return

        with self._lock:
            status = self.get_status()
            for listener in self._listeners:
                try:
                    listener(status)
                except Exception as e:
                    logger.error(f"Status listener failed: {e}")


class StatusChangeHandler(FileSystemEventHandler):
    """
    Watchdog event handler for log files.

    Forwards create, modify, delete and move events to a callback. A move
    passes both source and destination, so a file rotated out of the
    pattern still counts as a change.
    Ignores directory events.
    """

    def __init__(self, callback: Callable[..., None]):
        self.callback = callback

    def on_created(self, event):
        if not event.is_directory:
            self.callback(event.src_path)

    def on_modified(self, event):
        if not event.is_directory:
            self.callback(event.src_path)

    def on_deleted(self, event):
        if not event.is_directory:
            self.callback(event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self.callback(event.src_path, event.dest_path)
