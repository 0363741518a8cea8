"""Periodic liveness check for the assistant process."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("sessionwatch.process")


async def pgrep_exists(process_name: str) -> bool:
    """True when `pgrep -x <name>` finds a matching process."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "pgrep",
            "-x",
            process_name,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.warning("pgrep unavailable: %s", e)
        return False
    return await proc.wait() == 0


class ProcessMonitor:
    def __init__(
        self,
        process_name: str,
        on_detected: Callable[[], None],
        on_lost: Callable[[], None],
        *,
        interval: float = 5.0,
        checker: Callable[[str], Awaitable[bool]] = pgrep_exists,
    ):
        self.process_name = process_name
        self._on_detected = on_detected
        self._on_lost = on_lost
        self._interval = interval
        self._checker = checker
        self._task: Optional[asyncio.Task] = None
        self.is_process_running = False

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Watching for process %r every %.1fs", self.process_name, self._interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def check_once(self) -> None:
        """Run one liveness check and fire the transition callback if state changed."""
        try:
            running = await self._checker(self.process_name)
        except Exception as e:
            logger.warning("Process check failed: %s", e)
            running = False

        was_running = self.is_process_running
        self.is_process_running = running
        if running and not was_running:
            logger.info("Process %r detected", self.process_name)
            self._on_detected()
        elif not running and was_running:
            logger.info("Process %r terminated", self.process_name)
            self._on_lost()

    async def _loop(self) -> None:
        while True:
            try:
                await self.check_once()
            except Exception as e:
                logger.exception("Liveness transition failed: %s", e)
            await asyncio.sleep(self._interval)
