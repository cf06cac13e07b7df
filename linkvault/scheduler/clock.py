"""
Jittered ticker for the scheduler loop.

Each delay is ``interval * (1 + uniform(-jitter, +jitter))`` with a fresh
random draw per cycle, so restarts or several instances that line up on the
same boundary drift apart instead of hitting external services together.
"""

import asyncio
import random
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta, timezone

from linkvault.scheduler.config import SchedulerConfig


class JitteredClock:
    """
    Produces wake-up signals at a jittered interval until stopped.

    Usage:
        clock = JitteredClock(interval_seconds=3600, jitter_percent=20)
        async for _ in clock.ticks(stop_event):
            await run_cycle()
    """

    def __init__(
        self,
        interval_seconds: float,
        jitter_percent: float = 0.0,
        min_delay_seconds: float = 0.0,
        rng: random.Random | None = None,
        on_schedule: Callable[[datetime | None], None] | None = None,
    ):
        """
        Args:
            interval_seconds: Base delay between ticks
            jitter_percent: Maximum perturbation, 0-100
            min_delay_seconds: Floor applied after jitter
            rng: Random source (seed it in tests)
            on_schedule: Called with the next tick time when armed, None when cleared
        """
        self.interval_seconds = interval_seconds
        self.jitter_fraction = jitter_percent / 100.0
        self.min_delay_seconds = min_delay_seconds
        self._rng = rng or random.Random()
        self._on_schedule = on_schedule
        self._next_run_at: datetime | None = None

    @classmethod
    def from_config(
        cls,
        config: SchedulerConfig,
        rng: random.Random | None = None,
        on_schedule: Callable[[datetime | None], None] | None = None,
    ) -> "JitteredClock":
        return cls(
            interval_seconds=config.interval_seconds,
            jitter_percent=config.jitter_percent,
            min_delay_seconds=config.min_delay_seconds,
            rng=rng,
            on_schedule=on_schedule,
        )

    def _set_next_run(self, value: datetime | None) -> None:
        self._next_run_at = value
        if self._on_schedule is not None:
            self._on_schedule(value)

    @property
    def next_run_at(self) -> datetime | None:
        """Wall-clock time of the pending tick, if one is armed."""
        return self._next_run_at

    def next_delay(self) -> float:
        """Draw the next delay in seconds."""
        jitter = self._rng.uniform(-self.jitter_fraction, self.jitter_fraction)
        delay = self.interval_seconds * (1.0 + jitter)
        return max(self.min_delay_seconds, delay)

    async def wait(self, stop_event: asyncio.Event) -> bool:
        """
        Sleep for one jittered delay.

        Returns:
            True when the delay elapsed, False as soon as stop_event is set.
        """
        if stop_event.is_set():
            self._set_next_run(None)
            return False

        delay = self.next_delay()
        self._set_next_run(datetime.now(timezone.utc) + timedelta(seconds=delay))
        try:
            async with asyncio.timeout(delay):
                await stop_event.wait()
        except TimeoutError:
            return True
        finally:
            self._set_next_run(None)
        return False

    async def ticks(
        self,
        stop_event: asyncio.Event,
        immediate: bool = False,
    ) -> AsyncIterator[None]:
        """
        Yield once per tick until stop_event is set.

        Args:
            stop_event: Cancellation token; stops ticks without waiting out a delay.
            immediate: Yield the first tick without waiting.
        """
        if immediate and not stop_event.is_set():
            yield
        while await self.wait(stop_event):
            yield
