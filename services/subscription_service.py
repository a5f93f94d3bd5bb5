"""
Subscription registry.

Owns the in-memory index location -> subscriptions that the dispatcher
fans out over, and keeps it in step with the persisted subscriptions.

Rules:
- persistence is written first; the index changes only after the write succeeded
- each location bucket is guarded by its own asyncio.Lock; no await happens
  while a bucket lock is held, and readers get a tuple snapshot
- updates are read-modify-write against the persisted location set, never
  against the index, and are serialized per subscription id in-process
  (across processes the last write wins)
"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, DefaultDict, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from uuid6 import uuid7

from core.errors import SubscriptionNotFound
from models.subscription import Subscription, merge_locations, normalize_locations
from services.storage_service import StorageService

logger = logging.getLogger(__name__)


@dataclass
class _IdLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SubscriptionRegistry:
    def __init__(self, storage: StorageService, location_keys: Iterable[str] = ()):
        self.storage = storage
        self._buckets: Dict[str, List[Subscription]] = {key: [] for key in location_keys}
        self._bucket_locks: DefaultDict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._by_id: Dict[UUID, Subscription] = {}
        self._id_locks: Dict[UUID, _IdLock] = {}

    # --- startup ---
    async def load(self) -> int:
        """Rebuild the index from persisted subscriptions. Startup only."""
        stored = await self.storage.list_subscriptions()
        for row in stored:
            sub = Subscription(id=row.id, push=row.push, locations=normalize_locations(row.locations))
            await self._index(sub)
        logger.info("Loaded %d subscriptions from storage", len(stored))
        return len(stored)

    # --- mutations ---
    async def register(self, push: Dict[str, Any], locations: Iterable[str]) -> Subscription:
        sub = Subscription(id=UUID(bytes=uuid7().bytes), push=push, locations=normalize_locations(locations))
        await self.storage.upsert_subscription(sub.id, sub.locations, sub.push)
        await self._index(sub)
        logger.info("Subscription registered id=%s locations=%s", sub.id, ",".join(sub.locations))
        return sub

    async def update(
        self,
        subscription_id: UUID,
        push: Optional[Dict[str, Any]] = None,
        add_locations: Optional[Iterable[str]] = None,
        remove_locations: Optional[Iterable[str]] = None,
    ) -> Subscription:
        """
        Apply (persisted ∪ add) minus remove and replace the push capability
        when one is given. A subscription left with no locations is deleted;
        the returned shape then has an empty location list.
        """
        async with self._locked(subscription_id):
            existing = await self.storage.get_subscription(subscription_id)
            if existing is None:
                raise SubscriptionNotFound(subscription_id)

            locations = merge_locations(existing.locations, add_locations, remove_locations)
            sub = Subscription(id=subscription_id, push=push or existing.push, locations=locations)
            previous = self._by_id.get(subscription_id)
            stale = set(existing.locations)
            if previous is not None:
                stale.update(previous.locations)
            stale.difference_update(locations)

            if not locations:
                await self.storage.delete_subscription(subscription_id)
                await self._unindex(subscription_id, stale)
                self._by_id.pop(subscription_id, None)
                logger.info("Subscription id=%s has no locations left; removed", subscription_id)
                return sub

            await self.storage.upsert_subscription(subscription_id, locations, sub.push)
            await self._index(sub)
            await self._unindex(subscription_id, stale)
        logger.info("Subscription updated id=%s locations=%s", subscription_id, ",".join(locations))
        return sub

    async def remove(self, subscription_id: UUID) -> None:
        async with self._locked(subscription_id):
            deleted = await self.storage.delete_subscription(subscription_id)
            previous = self._by_id.get(subscription_id)
            if not deleted and previous is None:
                raise SubscriptionNotFound(subscription_id)
            # fall back to scanning every bucket if the index never knew this id
            locations = previous.locations if previous is not None else list(self._buckets)
            await self._unindex(subscription_id, locations)
            self._by_id.pop(subscription_id, None)
        logger.info("Subscription removed id=%s", subscription_id)

    # --- reads ---
    async def subscribers_of(self, location: str) -> Tuple[Subscription, ...]:
        """Snapshot of the bucket; later mutations do not affect it."""
        async with self._bucket_locks[location]:
            return tuple(self._buckets.get(location, ()))

    def count(self, location: str) -> int:
        return len(self._buckets.get(location, ()))

    def get(self, subscription_id: UUID) -> Optional[Subscription]:
        return self._by_id.get(subscription_id)

    @asynccontextmanager
    async def _locked(self, subscription_id: UUID) -> AsyncIterator[None]:
        """Per-id lock; the entry is dropped once its last user leaves."""
        entry = self._id_locks.get(subscription_id)
        if entry is None:
            entry = self._id_locks[subscription_id] = _IdLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._id_locks.pop(subscription_id, None)

    # --- index maintenance ---
    async def _index(self, sub: Subscription) -> None:
        """Insert `sub` into each of its buckets, replacing an older copy by id."""
        self._by_id[sub.id] = sub
        for location in sub.locations:
            async with self._bucket_locks[location]:
                bucket = self._buckets.setdefault(location, [])
                for i, current in enumerate(bucket):
                    if current.id == sub.id:
                        bucket[i] = sub
                        break
                else:
                    bucket.append(sub)

    async def _unindex(self, subscription_id: UUID, locations: Iterable[str]) -> None:
        for location in locations:
            async with self._bucket_locks[location]:
                bucket = self._buckets.get(location)
                if bucket:
                    bucket[:] = [s for s in bucket if s.id != subscription_id]
