"""
Cycle scheduler.

Runs the engine's periodic steps (market data, indicators, trading cycle,
rebalance, risk monitor) from a single loop. Due jobs execute one after
another to completion, so two cycles never mutate the portfolio or the
market cache at the same time.
"""

from __future__ import annotations

import logging
import signal
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    name: str
    interval: float  # seconds
    func: Callable[[], object]
    last_run: Optional[float] = None
    runs: int = 0
    failures: int = 0

    def is_due(self, now: float) -> bool:
        return self.last_run is None or now - self.last_run >= self.interval


class CycleScheduler:
    """Single-threaded run-to-completion job loop."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self._jobs: list[ScheduledJob] = []
        self.running = False

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs)

    def add_job(self, name: str, interval: float, func: Callable[[], object]) -> ScheduledJob:
        if interval <= 0:
            raise ValueError(f"Job interval must be positive, got {interval}")
        job = ScheduledJob(name=name, interval=interval, func=func)
        self._jobs.append(job)
        return job

    def run_pending(self, now: Optional[float] = None) -> list[str]:
        """Run every due job in registration order. Returns names run."""
        now = self._clock() if now is None else now
        ran = []
        for job in self._jobs:
            if not job.is_due(now):
                continue
            job.last_run = now
            job.runs += 1
            try:
                job.func()
            except Exception:
                # No retry: the job waits for its next interval.
                job.failures += 1
                logger.exception("Scheduled job %s failed", job.name)
            ran.append(job.name)
        return ran

    def run(self, max_ticks: Optional[int] = None, tick: float = 1.0) -> None:
        """Loop until stopped, interrupted, or max_ticks is reached."""
        self.running = True
        ticks = 0
        logger.info(
            "Scheduler started with %d jobs: %s",
            len(self._jobs),
            ", ".join(f"{j.name}/{j.interval:g}s" for j in self._jobs),
        )

        while self.running:
            self.run_pending()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            self._sleep(tick)

        self.running = False
        logger.info("Scheduler stopped after %d ticks", ticks)

    def stop(self, *_args) -> None:
        self.running = False

    def install_signal_handlers(self) -> None:
        """Stop gracefully on SIGINT/SIGTERM."""
        signal.signal(signal.SIGINT, self.stop)
        signal.signal(signal.SIGTERM, self.stop)
