"""File watcher service using watchfiles.

Watches the transcript root and hands classified `.jsonl` changes to a
callback running on the event loop.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from watchfiles import Change, awatch

from sessionwatch.models import FileEvent

logger = logging.getLogger("sessionwatch.watcher")

FileEventCallback = Callable[[list[FileEvent]], None]


def classify_changes(changes: set[tuple[Change, str]]) -> list[FileEvent]:
    """Turn raw watchfiles changes into transcript events.

    Only `.jsonl` files are relevant; additions count as modifications.
    """
    result: list[FileEvent] = []
    for change_type, path_str in sorted(changes, key=lambda change: change[1]):
        if Path(path_str).suffix != ".jsonl":
            continue
        if change_type == Change.deleted:
            result.append(FileEvent(path=path_str, kind="removed"))
        elif change_type in (Change.modified, Change.added):
            result.append(FileEvent(path=path_str, kind="modified"))
    return result


class FileWatcher:
    """Background watcher over one or more directories.

    Uses `watchfiles` (Rust-accelerated) for efficient watching.
    """

    def __init__(self, paths: list[Path], callback: FileEventCallback, debounce_ms: int = 2000):
        self.paths = list(paths)
        self._callback = callback
        self._debounce_ms = debounce_ms
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    def start(self) -> None:
        """Start watching in a background task on the running loop."""
        if self._running:
            logger.warning("File watcher already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._watch_loop(self._stop_event))
        logger.info("File watcher started for %s", [str(p) for p in self.paths])

    def stop(self) -> None:
        """Stop the watcher; no callback fires after this returns."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None
        if self._task is not None:
            self._task.cancel()
            self._task = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def _watch_loop(self, stop_event: asyncio.Event) -> None:
        watch_paths = [p for p in self.paths if p.exists()]

        if not watch_paths:
            logger.warning("No watch paths exist, watcher has nothing to monitor")
            self._running = False
            return

        try:
            async for changes in awatch(*watch_paths, stop_event=stop_event, debounce=self._debounce_ms):
                if not self._running:
                    break

                events = classify_changes(changes)
                if not events:
                    continue
                logger.debug("Detected %d transcript change(s)", len(events))
                try:
                    self._callback(events)
                except Exception as e:
                    logger.exception("Error applying file changes: %s", e)
        except asyncio.CancelledError:
            logger.debug("File watcher task cancelled")
        except Exception as e:
            logger.error("File watcher error: %s", e)
        finally:
            if self._stop_event is stop_event or self._stop_event is None:
                self._running = False
