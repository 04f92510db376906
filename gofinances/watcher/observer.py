"""Drop-folder watcher: queue new CSV files, import each one once it has settled.

watchdog's PollingObserver thread only records paths. Imports run on the
thread that calls FolderWatcher.run_pending(), one file at a time, so the
repository connection is never used from the observer thread.

A file has settled when the import service's file source reports the same
size and modification time for ``settle_seconds``. Content that is still
broken after that fails in the parser like any other malformed input, and
the file is left in place.
"""

from __future__ import annotations

import logging
import os
import threading
import time
import warnings
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEventHandler

from gofinances.errors import CleanupWarning, ImportTransactionsError

if TYPE_CHECKING:
    from gofinances.importer.service import ImportTransactionsService
    from gofinances.importer.source import LocalFileSource

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".csv"}

DEFAULT_SETTLE_SECONDS = 10

# Seconds between PollingObserver directory scans
DEFAULT_POLL_INTERVAL = 30


def is_supported(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


@dataclass
class ImportResult:
    """Result of importing a single file."""
    file_name: str
    status: str  # "success", "error"
    imported_count: int = 0
    skipped_count: int = 0  # Incomplete rows dropped by the normalizer
    new_category_count: int = 0
    error_stage: str | None = None
    error_message: str | None = None
    warnings: list[str] = field(default_factory=list)


class ImportPipeline:
    """Run one ImportTransactionsService import per file and report the outcome.

    Args:
        service: Configured import service.
    """

    def __init__(self, service: ImportTransactionsService):
        self.service = service

    def process_file(self, filepath: Path) -> ImportResult:
        """Import a single file. Never raises: failures become error results."""
        file_name = filepath.name

        if not is_supported(filepath):
            return ImportResult(
                file_name=file_name,
                status="error",
                error_message=f"Unsupported file extension: {filepath.suffix}",
            )

        try:
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always", CleanupWarning)
                outcome = self.service.run(filepath)
        except ImportTransactionsError as e:
            logger.error("Import failed for %s at %s stage: %s", file_name, e.stage, e)
            return ImportResult(
                file_name=file_name,
                status="error",
                error_stage=e.stage,
                error_message=str(e),
            )
        except Exception as e:
            logger.exception("Import failed for %s", file_name)
            return ImportResult(
                file_name=file_name,
                status="error",
                error_message=str(e),
            )

        return ImportResult(
            file_name=file_name,
            status="success",
            imported_count=len(outcome.transactions),
            skipped_count=outcome.skipped_count,
            new_category_count=len(outcome.new_categories),
            warnings=[
                str(w.message) for w in caught
                if issubclass(w.category, CleanupWarning)
            ],
        )


class PendingFiles:
    """Files waiting to settle before import.

    Filled from the observer thread, drained by pop_settled() on the
    importing thread.

    Args:
        source: File source used to snapshot each candidate.
        settle_seconds: How long a snapshot must stay unchanged.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        source: LocalFileSource,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.settle_seconds = settle_seconds
        self.clock = clock
        self._lock = threading.Lock()
        # path -> (last snapshot, when it was taken)
        self._files: dict[Path, tuple[tuple[int, int] | None, float]] = {}

    def add(self, path: Path) -> None:
        with self._lock:
            self._files[path] = (None, self.clock())

    def __contains__(self, path: Path) -> bool:
        with self._lock:
            return path in self._files

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    def pop_settled(self) -> list[Path]:
        """Remove and return files whose snapshot held for settle_seconds."""
        now = self.clock()
        settled: list[Path] = []
        with self._lock:
            for path, (last, since) in list(self._files.items()):
                try:
                    current = self.source.snapshot(path)
                except FileNotFoundError:
                    logger.info("%s disappeared before import", path.name)
                    del self._files[path]
                    continue
                except OSError as e:
                    logger.warning("Cannot stat %s, dropping it: %s", path.name, e)
                    del self._files[path]
                    continue

                if current != last:
                    self._files[path] = (current, now)
                elif now - since >= self.settle_seconds:
                    del self._files[path]
                    settled.append(path)
        return sorted(settled)


class DropFolderHandler(FileSystemEventHandler):
    """Queue CSV files that are created in, or moved into, the drop folder."""

    def __init__(self, pending: PendingFiles):
        self.pending = pending

    def on_created(self, event) -> None:
        if not event.is_directory:
            self._queue(event.src_path)

    def on_moved(self, event) -> None:
        if not event.is_directory:
            self._queue(event.dest_path)

    def _queue(self, raw_path) -> None:
        path = Path(os.fsdecode(raw_path))
        if is_supported(path):
            logger.info("New file detected: %s", path.name)
            self.pending.add(path)


class FolderWatcher:
    """Watch a drop folder and import files once they settle.

    Args:
        watch_dir: Directory to watch. Created on start() if missing.
        pipeline: ImportPipeline used for every file. Its service's file
            source decides when a file has settled.
        settle_seconds: Seconds a file must stay unchanged before import.
        poll_interval: Seconds between directory scans.
    """

    def __init__(
        self,
        watch_dir: Path,
        pipeline: ImportPipeline,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.watch_dir = Path(watch_dir)
        self.pipeline = pipeline
        self.poll_interval = poll_interval
        self.pending = PendingFiles(pipeline.service.source, settle_seconds)
        self._observer = None

    def start(self) -> None:
        """Queue CSVs already in the folder, then start the observer."""
        from watchdog.observers.polling import PollingObserver

        self.watch_dir.mkdir(parents=True, exist_ok=True)
        for path in sorted(self.watch_dir.iterdir()):
            if path.is_file() and is_supported(path):
                self.pending.add(path)

        self._observer = PollingObserver(timeout=self.poll_interval)
        self._observer.schedule(
            DropFolderHandler(self.pending), str(self.watch_dir), recursive=False,
        )
        self._observer.start()
        logger.info("Watching %s for new transaction files", self.watch_dir)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
        logger.info("Folder watcher stopped")

    def run_pending(self) -> list[ImportResult]:
        """Import every settled file in path order and return the results."""
        results = []
        for path in self.pending.pop_settled():
            result = self.pipeline.process_file(path)
            logger.info(
                "Import result for %s: %s (imported=%d, skipped=%d, new categories=%d)",
                path.name, result.status, result.imported_count,
                result.skipped_count, result.new_category_count,
            )
            results.append(result)
        return results
