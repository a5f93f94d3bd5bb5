"""
Service container.

Every stateful service (storage, registry, cache, dispatcher, scheduler)
is built once here and handed to whoever needs it; nothing lives in module
globals. main.py builds one per process, tests build their own with fakes.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from config.locations import load_locations
from config.settings import Settings
from core.db import create_engine, create_session_maker
from models.location import Location
from services.storage_service import StorageService
from services.subscription_service import SubscriptionRegistry
from services.summary_cache import SummaryCache
from services.summary_generator import SummaryGenerator
from tools.notifier import WebPushNotifier
from tools.summarizer import GroqSummarizer
from tools.weather import WeatherClient
from workers.notification_worker import NotificationDispatcher
from workers.scheduler import UpdateScheduler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    locations: Dict[str, Location]
    engine: AsyncEngine
    storage: StorageService
    registry: SubscriptionRegistry
    cache: SummaryCache
    weather: WeatherClient
    summarizer: GroqSummarizer
    dispatcher: NotificationDispatcher
    generator: SummaryGenerator
    scheduler: UpdateScheduler
    _warmup: Optional[asyncio.Task] = field(default=None, repr=False)

    async def start(self) -> None:
        """
        Startup order: schema, subscriptions, persisted summaries, dispatch
        workers, then the cache warm-up (background) and the daily timers.
        """
        await self.storage.create_schema(self.engine)
        await self.registry.load()
        self.cache.warm((await self.storage.load_cached_summaries()).values())
        self.dispatcher.start()
        self._warmup = asyncio.create_task(self.scheduler.warm_up(self.cache), name="warm-up")
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        if self._warmup is not None:
            self._warmup.cancel()
            await asyncio.gather(self._warmup, return_exceptions=True)
        await self.dispatcher.stop(timeout=self.settings.SHUTDOWN_GRACE_SEC)
        await self.weather.aclose()
        await self.summarizer.aclose()
        await self.engine.dispose()


def build_container(settings: Settings, locations: Optional[Dict[str, Location]] = None) -> ServiceContainer:
    locations = locations or load_locations()
    engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    storage = StorageService(create_session_maker(engine))
    registry = SubscriptionRegistry(storage, locations.keys())
    cache = SummaryCache()
    weather = WeatherClient(
        user_agent=settings.MET_API_USER_AGENT or "",
        base_url=settings.MET_API_URL,
        timeout=settings.WEATHER_TIMEOUT_SEC,
        use_placeholder=settings.USE_PLACEHOLDER,
    )
    summarizer = GroqSummarizer(
        api_key=settings.GROQ_API_KEY,
        model=settings.GROQ_MODEL,
        temperature=settings.SUMMARY_TEMPERATURE,
        max_tokens=settings.SUMMARY_MAX_TOKENS,
    )
    notifier = WebPushNotifier(
        vapid_private_key=settings.VAPID_PRIVATE_KEY_BASE64 or "",
        vapid_subject=settings.VAPID_SUBJECT or "",
        ttl=settings.PUSH_TTL_SEC,
        timeout=settings.PUSH_TIMEOUT_SEC,
    )
    dispatcher = NotificationDispatcher(
        registry,
        notifier,
        locations.keys(),
        max_concurrency=settings.PUSH_MAX_CONCURRENCY,
        prune_expired=settings.PRUNE_EXPIRED_SUBSCRIPTIONS,
    )
    generator = SummaryGenerator(weather, summarizer, cache, storage, registry, dispatcher)
    scheduler = UpdateScheduler(
        generator, locations, at_hour=settings.UPDATE_HOUR, at_minute=settings.UPDATE_MINUTE
    )
    logger.info("Service container built for %d locations", len(locations))
    return ServiceContainer(
        settings=settings,
        locations=locations,
        engine=engine,
        storage=storage,
        registry=registry,
        cache=cache,
        weather=weather,
        summarizer=summarizer,
        dispatcher=dispatcher,
        generator=generator,
        scheduler=scheduler,
    )
