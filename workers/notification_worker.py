"""
Notification dispatcher (fan-out worker).

Purpose:
- Run one long-lived asyncio task per location that waits for "new summary"
  signals and pushes the summary to every subscriber of that location
- Isolate failures: one subscriber's failed delivery never affects another's
- Bound concurrency per round with a semaphore

Signals:
- each location has a one-slot queue; a signal arriving while one is already
  pending replaces it, so subscribers always get the latest summary and
  never a backlog of stale ones
- signal() never blocks the caller

Shutdown:
- stop() sets the shutdown event; a round already in progress runs to
  completion (up to the grace period), pending signals are dropped, no new
  round starts

There is no retry within a round; the next scheduled generation is the retry.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol
from uuid import UUID

from core.errors import DeliveryError, InvalidPushCapability, SubscriptionNotFound
from models.subscription import Subscription
from models.summary import PushPayload
from services.subscription_service import SubscriptionRegistry

logger = logging.getLogger(__name__)


class PushClient(Protocol):
    async def deliver(self, push: Dict[str, Any], payload: bytes) -> None: ...


@dataclass
class RoundResult:
    location: str
    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    expired: List[UUID] = field(default_factory=list)


class NotificationDispatcher:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        notifier: PushClient,
        locations: Iterable[str],
        max_concurrency: int = 32,
        prune_expired: bool = False,
    ):
        self.registry = registry
        self.notifier = notifier
        self.max_concurrency = max(1, max_concurrency)
        self.prune_expired = prune_expired
        self._queues: Dict[str, asyncio.Queue] = {key: asyncio.Queue(maxsize=1) for key in locations}
        self._workers: Dict[str, asyncio.Task] = {}
        self._closing = asyncio.Event()
        self.delivered = 0
        self.failed = 0

    # --- lifecycle ---
    def start(self) -> None:
        for key in self._queues:
            if key not in self._workers:
                self._workers[key] = asyncio.create_task(self._run(key), name=f"dispatch:{key}")
        logger.info("Notification dispatcher started for %d locations", len(self._workers))

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Let in-flight rounds finish (up to `timeout`), then cancel what is left."""
        self._closing.set()
        workers = list(self._workers.values())
        if workers:
            _, pending = await asyncio.wait(workers, timeout=timeout)
            for task in pending:
                logger.warning("Cancelling dispatch worker %s after grace period", task.get_name())
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        self._workers.clear()
        logger.info("Notification dispatcher stopped. Delivered: %d, Failed: %d", self.delivered, self.failed)

    # --- signalling ---
    def signal(self, location: str, summary: str) -> bool:
        """
        Hand a new summary to the location's worker without waiting.

        Returns False when the location is unknown or the dispatcher is
        shutting down.
        """
        queue = self._queues.get(location)
        if queue is None or self._closing.is_set():
            logger.warning("Dropping summary signal location=%s (no active dispatcher)", location)
            return False
        if queue.full():
            queue.get_nowait()
            logger.info("Coalesced pending summary signal location=%s", location)
        queue.put_nowait(summary)
        return True

    async def _run(self, location: str) -> None:
        queue = self._queues[location]
        closing = asyncio.ensure_future(self._closing.wait())
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                await asyncio.wait({getter, closing}, return_when=asyncio.FIRST_COMPLETED)
                if self._closing.is_set():
                    if getter.done() and not getter.cancelled():
                        logger.info("Shutdown: dropping pending summary signal location=%s", location)
                    getter.cancel()
                    return
                summary = getter.result()
                try:
                    await self.deliver_round(location, summary)
                except Exception:
                    # keep the worker alive for the next signal
                    logger.exception("Fan-out round crashed location=%s", location)
        finally:
            closing.cancel()

    # --- fan-out ---
    async def deliver_round(self, location: str, summary: str) -> RoundResult:
        """Push `summary` to a snapshot of the location's subscribers and wait for all attempts."""
        subs = await self.registry.subscribers_of(location)
        result = RoundResult(location=location, attempted=len(subs))
        if not subs:
            logger.info("No subscribers to push to location=%s", location)
            return result

        payload = PushPayload(summary=summary, location=location).model_dump_json().encode("utf-8")
        semaphore = asyncio.Semaphore(self.max_concurrency)
        logger.info("Pushing weather summary to subscribers count=%d location=%s", len(subs), location)

        async def deliver_one(sub: Subscription) -> bool:
            async with semaphore:
                try:
                    await self.notifier.deliver(sub.push, payload)
                    return True
                except InvalidPushCapability as e:
                    logger.warning("Push capability rejected id=%s location=%s: %s", sub.id, location, e)
                    result.expired.append(sub.id)
                except DeliveryError as e:
                    logger.warning("Unable to send web push id=%s location=%s: %s", sub.id, location, e)
                except Exception:
                    logger.exception("Unexpected web push failure id=%s location=%s", sub.id, location)
                return False

        outcomes = await asyncio.gather(*(deliver_one(sub) for sub in subs))
        result.delivered = sum(1 for ok in outcomes if ok)
        result.failed = result.attempted - result.delivered
        self.delivered += result.delivered
        self.failed += result.failed
        logger.info(
            "Pushed weather summary location=%s delivered=%d failed=%d",
            location, result.delivered, result.failed,
        )

        if self.prune_expired and result.expired:
            await self._prune(result.expired)
        return result

    async def _prune(self, subscription_ids: List[UUID]) -> None:
        for subscription_id in subscription_ids:
            try:
                await self.registry.remove(subscription_id)
                logger.info("Pruned expired subscription id=%s", subscription_id)
            except SubscriptionNotFound:
                pass
