"""
Update scheduler.

One timer task per location fires at UPDATE_HOUR:UPDATE_MINUTE in that
location's own time zone (croniter on a zone-aware reference, so DST shifts
move the UTC instant and not the wall-clock time).

Each location is Idle or Running. A tick that arrives while the location is
Running is dropped with a warning: two generations for one location would
race on the cache and push twice. Different locations never wait on each
other.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from croniter import croniter

from models.location import Location
from services.summary_cache import SummaryCache
from services.summary_generator import SummaryGenerator

logger = logging.getLogger(__name__)


class UpdateScheduler:
    def __init__(
        self,
        generator: SummaryGenerator,
        locations: Dict[str, Location],
        at_hour: int = 7,
        at_minute: int = 0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.generator = generator
        self.locations = locations
        self.schedule = f"{at_minute} {at_hour} * * *"
        if not croniter.is_valid(self.schedule):
            raise ValueError(f"invalid daily update time {at_hour:02d}:{at_minute:02d}")
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._running: Dict[str, asyncio.Task] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._closing = asyncio.Event()

    def next_run_time(self, location: Location, ref: Optional[datetime] = None) -> datetime:
        """Next tick for `location`, as an aware datetime in its zone."""
        ref = (ref or self.clock()).astimezone(location.tz)
        return croniter(self.schedule, ref).get_next(datetime)

    def is_running(self, key: str) -> bool:
        return key in self._running

    def trigger(self, key: str, deliver: bool = True) -> Optional[asyncio.Task]:
        """
        Start a generation for `key` unless one is already running.

        Returns the generation task, or None when the tick was dropped.
        """
        if self._closing.is_set():
            return None
        if key in self._running:
            logger.warning("Update for location=%s still running; dropping tick", key)
            return None
        location = self.locations[key]
        task = asyncio.create_task(self._generate(location, deliver), name=f"generate:{key}")
        self._running[key] = task
        task.add_done_callback(lambda _t, k=key: self._running.pop(k, None))
        return task

    async def _generate(self, location: Location, deliver: bool) -> bool:
        try:
            return await self.generator.run(location, deliver=deliver)
        except Exception:
            logger.exception("Summary generation crashed location=%s", location.key)
            return False

    async def warm_up(self, cache: SummaryCache) -> List[str]:
        """
        Generate, without delivery, every location that has no summary yet.
        Runs all of them concurrently; returns the keys that were attempted.
        """
        missing = [key for key in self.locations if key not in cache]
        tasks = [t for t in (self.trigger(key, deliver=False) for key in missing) if t is not None]
        if tasks:
            logger.info("Warming summary cache for %d locations", len(tasks))
            await asyncio.gather(*tasks)
        return missing

    # --- lifecycle ---
    def start(self) -> None:
        for key, location in self.locations.items():
            if key not in self._timers:
                self._timers[key] = asyncio.create_task(self._run_schedule(location), name=f"schedule:{key}")
                logger.info("Update job scheduled location=%s next=%s", key, self.next_run_time(location).isoformat())

    async def stop(self) -> None:
        """Stop the timers and abandon generations still in flight."""
        self._closing.set()
        tasks = list(self._timers.values()) + list(self._running.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        logger.info("Update scheduler stopped")

    async def _run_schedule(self, location: Location) -> None:
        while not self._closing.is_set():
            now = self.clock()
            delay = (self.next_run_time(location, now) - now).total_seconds()
            try:
                await asyncio.wait_for(self._closing.wait(), timeout=max(delay, 0))
                return
            except asyncio.TimeoutError:
                pass
            self.trigger(location.key)
            # step past the tick so a fast clock cannot fire it twice
            await asyncio.sleep(1)
