"""
Custom channels file watcher.
Polls the overlay file's modification time and posts change events to a queue.
"""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileChangeEvent:
    path: str
    mtime: Optional[float]  # None when the file was removed


class CustomFileWatcher:
    """Background poller for the custom channels file."""

    def __init__(self, path: str, queue: asyncio.Queue, interval: float = 5.0):
        self.path = Path(path)
        self.queue = queue
        self.interval = interval
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._last_mtime: Optional[float] = None

    def _mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    async def start(self):
        """Start polling. The current state of the file is the baseline."""
        if self._running:
            logger.warning("File watcher already running")
            return
        self._last_mtime = self._mtime()
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Watching custom channels file for changes: {self.path}")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def check(self) -> bool:
        """Compare against the last seen mtime, posting an event on change."""
        mtime = self._mtime()
        if mtime == self._last_mtime:
            return False
        self._last_mtime = mtime
        self.queue.put_nowait(FileChangeEvent(path=str(self.path), mtime=mtime))
        logger.debug(f"Custom channels file changed: {self.path}")
        return True

    async def _poll_loop(self):
        while self._running:
            await asyncio.sleep(self.interval)
            self.check()
