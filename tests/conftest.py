import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# Ensure project root is on sys.path so `services.*`, `workers.*` imports work
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))


# Explicitly enable pytest-asyncio plugin for async tests/fixtures
pytest_plugins = ("pytest_asyncio",)


from config.locations import load_locations
from config.settings import Settings
from core.container import ServiceContainer
from core.db import create_engine, create_session_maker
from core.errors import InvalidPushCapability, SummarizationError, TransientDeliveryError, WeatherFetchError
from services.storage_service import StorageService
from services.subscription_service import SubscriptionRegistry
from services.summary_cache import SummaryCache
from services.summary_generator import SummaryGenerator
from tools.weather import placeholder_forecast
from workers.notification_worker import NotificationDispatcher
from workers.scheduler import UpdateScheduler


# 07:00 in New York, 20:00 in Tokyo, 04:00 in Los Angeles
FIXED_NOW = datetime(2026, 10, 17, 11, 0, tzinfo=timezone.utc)


def make_push(n: int) -> Dict[str, Any]:
    return {
        "endpoint": f"https://push.example.com/send/{n}",
        "expirationTime": None,
        "keys": {"p256dh": f"p256dh-{n}", "auth": f"auth-{n}"},
    }


async def wait_until(predicate, timeout: float = 2.0):
    """Poll `predicate` until it holds; fail the test after `timeout` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class FakeWeather:
    """Serves the placeholder forecast, or fails when `fail` is set."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now
        self.fail = False
        self.calls: List[tuple] = []

    async def fetch_forecast(self, lat: float, lon: float) -> bytes:
        self.calls.append((lat, lon))
        if self.fail:
            raise WeatherFetchError("provider unavailable")
        return placeholder_forecast(lat, lon, now=self.now)

    async def aclose(self):
        pass


class FakeSummarizer:
    """Returns `text`; `gate` (an Event) holds every call until it is set."""

    def __init__(self, text: str = "Sunny, 20C/68F"):
        self.text = text
        self.fail = False
        self.gate: Optional[asyncio.Event] = None
        self.prompts: List[Sequence[str]] = []

    async def generate(self, prompt_parts: Sequence[str]) -> str:
        self.prompts.append(list(prompt_parts))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise SummarizationError("model unavailable")
        return self.text

    async def aclose(self):
        pass


class RecordingNotifier:
    """Records deliveries; endpoints in `failing`/`expired` raise instead."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.failing: Set[str] = set()
        self.expired: Set[str] = set()
        self.crashing: Set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def deliver(self, push: Dict[str, Any], payload: bytes) -> None:
        endpoint = push["endpoint"]
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if endpoint in self.failing:
                raise TransientDeliveryError("push service returned 503", 503)
            if endpoint in self.expired:
                raise InvalidPushCapability("push service returned 410", 410)
            if endpoint in self.crashing:
                raise RuntimeError("boom")
            self.calls.append((endpoint, payload))
        finally:
            self.in_flight -= 1


@pytest.fixture()
def locations():
    return load_locations()


@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'data.sqlite'}")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def storage(engine):
    storage = StorageService(create_session_maker(engine))
    await storage.create_schema(engine)
    return storage


@pytest_asyncio.fixture()
async def registry(storage, locations):
    return SubscriptionRegistry(storage, locations.keys())


@pytest.fixture()
def cache():
    return SummaryCache()


@pytest.fixture()
def weather():
    return FakeWeather()


@pytest.fixture()
def summarizer():
    return FakeSummarizer()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture()
async def dispatcher(registry, notifier, locations):
    dispatcher = NotificationDispatcher(registry, notifier, locations.keys(), max_concurrency=8)
    yield dispatcher
    await dispatcher.stop(timeout=1)


@pytest_asyncio.fixture()
async def generator(weather, summarizer, cache, storage, registry, dispatcher):
    return SummaryGenerator(weather, summarizer, cache, storage, registry, dispatcher, clock=lambda: FIXED_NOW)


@pytest_asyncio.fixture()
async def scheduler(generator, locations):
    scheduler = UpdateScheduler(generator, locations, clock=lambda: FIXED_NOW)
    yield scheduler
    await scheduler.stop()


@pytest.fixture()
def settings():
    return Settings(
        _env_file=None,
        GROQ_API_KEY="test-key",
        MET_API_USER_AGENT="7am-tests",
        VAPID_SUBJECT="mailto:ops@example.com",
        VAPID_PUBLIC_KEY_BASE64="BPublicKeyForTests",
        VAPID_PRIVATE_KEY_BASE64="private-key-for-tests",
        RATE_LIMIT_CALLS=1000,
    )


@pytest_asyncio.fixture()
async def container(settings, locations, engine, storage, registry, cache, weather, summarizer,
                    dispatcher, generator, scheduler):
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


def build_test_app(settings, container):
    """App without lifespan: the container is injected, nothing external starts."""
    from main import create_app

    app = create_app(settings)
    app.state.container = container
    return app


@pytest_asyncio.fixture()
async def api_client(settings, container):
    app = build_test_app(settings, container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
