"""
Summary generator: fetch -> filter to the local day -> prompt -> summarize
-> cache -> persist -> signal the dispatcher.

A failed fetch or summarization aborts the run and leaves the previous
summary in place; nothing is retried until the next scheduled tick.
Persisting the summary is best-effort because the in-memory cache is what
pages and pushes are served from.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError

from core.errors import UpstreamError
from models.location import Location
from services.storage_service import StorageService
from services.subscription_service import SubscriptionRegistry
from services.summary_cache import SummaryCache
from tools.weather import filter_forecast_for_day

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = (
    "Today is {date}. You are writing the morning weather notification for {name}. "
    "The next message contains the forecast for {name} for today as JSON from the "
    "Norwegian Meteorological Institute; timestamps are UTC. "
    "Summarize the day's weather in a single short paragraph of plain text: how the "
    "day starts and ends, the high and low temperature in both Celsius and Fahrenheit "
    "(for example 20C/68F), the chance and timing of rain or snow, and wind if it is "
    "notable. Add one practical suggestion such as bringing an umbrella or a jacket. "
    "Do not use markdown, lists or headings, and do not mention the data source."
)


class ForecastSource(Protocol):
    async def fetch_forecast(self, lat: float, lon: float) -> bytes: ...


class Summarizer(Protocol):
    async def generate(self, prompt_parts: Sequence[str]) -> str: ...


class UpdateSink(Protocol):
    def signal(self, location: str, summary: str) -> bool: ...


def build_prompt(location: Location, local_date: str, forecast: dict) -> List[str]:
    return [
        PROMPT_TEMPLATE.format(date=local_date, name=location.display_name),
        json.dumps(forecast, separators=(",", ":")),
    ]


class SummaryGenerator:
    def __init__(
        self,
        weather: ForecastSource,
        summarizer: Summarizer,
        cache: SummaryCache,
        storage: StorageService,
        registry: SubscriptionRegistry,
        dispatcher: UpdateSink,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.weather = weather
        self.summarizer = summarizer
        self.cache = cache
        self.storage = storage
        self.registry = registry
        self.dispatcher = dispatcher
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self, location: Location, deliver: bool = True) -> bool:
        """
        Regenerate the summary for `location`.

        `deliver=False` is the startup warm-up: the cache is filled but no
        push goes out. Returns True when a new summary was stored.
        """
        logger.info("Updating weather summary location=%s deliver=%s", location.key, deliver)
        now_local = self.clock().astimezone(location.tz)

        try:
            raw = await self.weather.fetch_forecast(location.lat, location.lon)
            forecast = filter_forecast_for_day(raw, location.tz, now_local.date())
        except UpstreamError as e:
            logger.error("Failed to query weather data location=%s: %s", location.key, e)
            return False

        prompt = build_prompt(location, now_local.strftime("%A, %d %B %Y"), forecast)
        try:
            text = await self.summarizer.generate(prompt)
        except UpstreamError as e:
            logger.error("Failed to generate weather summary location=%s: %s", location.key, e)
            return False

        summary = self.cache.store(location.key, text, generated_at=self.clock())

        try:
            await self.storage.cache_summary(location.key, text, summary.generated_at)
        except SQLAlchemyError as e:
            logger.warning("Could not persist summary location=%s (serving from memory): %s", location.key, e)

        if deliver and self.registry.count(location.key) > 0:
            self.dispatcher.signal(location.key, text)

        logger.info("Updated weather summary location=%s", location.key)
        return True
