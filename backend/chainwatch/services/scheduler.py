"""Cooperative interval scheduler.

Each registered job runs as its own asyncio task: wait the initial delay,
then call the callback every ``interval`` seconds. A failing callback is
logged and the job keeps running.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

JobCallback = Callable[[], Awaitable[None]]


@dataclass
class Job:
    name: str
    interval: float
    callback: JobCallback
    delay: float = 0.0
    next_fire: float | None = None  # Event loop time
    task: asyncio.Task | None = None


class Scheduler:
    """Run async callbacks on fixed intervals."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def register(
        self,
        name: str,
        interval: float,
        callback: JobCallback,
        delay: float = 0.0,
    ) -> None:
        """Register a job. Jobs registered after start() begin immediately."""
        if interval <= 0:
            raise ValueError(f"Job {name}: interval must be positive, got {interval}")
        if name in self._jobs:
            raise ValueError(f"Job {name} already registered")

        job = Job(name=name, interval=interval, callback=callback, delay=max(0.0, delay))
        self._jobs[name] = job
        if self._running:
            self._launch(job)

    def _launch(self, job: Job) -> None:
        job.next_fire = asyncio.get_running_loop().time() + job.delay
        job.task = asyncio.create_task(self._run(job), name=f"job:{job.name}")

    async def _run(self, job: Job) -> None:
        loop = asyncio.get_running_loop()
        while True:
            wait = job.next_fire - loop.time()
            if wait > 0:
                await asyncio.sleep(wait)
            job.next_fire = loop.time() + job.interval
            try:
                await job.callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Job {job.name} failed: {e}", exc_info=True)

    def start(self) -> None:
        """Start every registered job. Must be called from a running loop."""
        if self._running:
            return
        self._running = True
        for job in self._jobs.values():
            self._launch(job)
        logger.info(f"Scheduler started with {len(self._jobs)} jobs")

    async def stop(self) -> None:
        """Cancel all jobs and wait for them to finish."""
        if not self._running:
            return
        self._running = False
        tasks = [job.task for job in self._jobs.values() if job.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for job in self._jobs.values():
            job.task = None
            job.next_fire = None
        logger.info("Scheduler stopped")

    def time_remaining(self, name: str) -> float | None:
        """Seconds until the job next fires, None if unknown or not running."""
        job = self._jobs.get(name)
        if job is None or job.next_fire is None:
            return None
        return max(0.0, job.next_fire - asyncio.get_running_loop().time())

    @property
    def jobs(self) -> list[str]:
        return list(self._jobs)
