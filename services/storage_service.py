"""
DB-backed persistence for subscriptions and summaries (async SQLAlchemy).

- upsert_subscription  -> INSERT or UPDATE by id
- get_subscription     -> authoritative read used by read-modify-write updates
- delete_subscription  -> DELETE, reports whether a row existed
- list_subscriptions   -> SELECT all (startup index rebuild)
- cache_summary / load_cached_summary / load_cached_summaries -> summaries table

Errors from the database propagate; callers decide whether a failure is
fatal (registration) or degraded (summary caching).
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.db import Base
from models import db_models  # noqa: F401 ensure models are imported so tables are registered
from models.db_models import SubscriptionRecord, SummaryRecord
from models.summary import Summary

logger = logging.getLogger(__name__)


@dataclass
class StoredSubscription:
    id: UUID
    locations: List[str]
    push: Dict[str, Any] = field(repr=False)


def _join_locations(locations: Sequence[str]) -> str:
    return ",".join(locations)


def _split_locations(raw: str) -> List[str]:
    return [loc for loc in (raw or "").split(",") if loc]


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class StorageService:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def create_schema(self, engine: AsyncEngine) -> None:
        """CREATE TABLE IF NOT EXISTS for every registered model."""
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # --- subscriptions ---
    async def upsert_subscription(self, subscription_id: UUID, locations: Sequence[str], push: Dict[str, Any]) -> None:
        async with self.session_maker() as session:
            row = await session.get(SubscriptionRecord, str(subscription_id))
            if row is None:
                row = SubscriptionRecord(id=str(subscription_id))
                session.add(row)
            row.locations = _join_locations(locations)
            row.subscription_json = json.dumps(push)
            await session.commit()

    async def get_subscription(self, subscription_id: UUID) -> Optional[StoredSubscription]:
        async with self.session_maker() as session:
            row = await session.get(SubscriptionRecord, str(subscription_id))
            if row is None:
                return None
            return StoredSubscription(
                id=subscription_id,
                locations=_split_locations(row.locations),
                push=json.loads(row.subscription_json),
            )

    async def delete_subscription(self, subscription_id: UUID) -> bool:
        async with self.session_maker() as session:
            result = await session.execute(
                delete(SubscriptionRecord).where(SubscriptionRecord.id == str(subscription_id))
            )
            await session.commit()
            return result.rowcount > 0

    async def list_subscriptions(self) -> List[StoredSubscription]:
        """
        Every persisted subscription. Rows with an unreadable id or push
        capability are skipped with a warning rather than failing startup.
        """
        async with self.session_maker() as session:
            result = await session.execute(select(SubscriptionRecord))
            rows = result.scalars().all()

        out: List[StoredSubscription] = []
        for row in rows:
            try:
                out.append(StoredSubscription(
                    id=UUID(row.id),
                    locations=_split_locations(row.locations),
                    push=json.loads(row.subscription_json),
                ))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping unreadable subscription row id=%s: %s", row.id, e)
        return out

    # --- summaries ---
    async def cache_summary(self, location: str, text: str, generated_at: Optional[datetime] = None) -> None:
        async with self.session_maker() as session:
            row = await session.get(SummaryRecord, location)
            if row is None:
                row = SummaryRecord(location=location)
                session.add(row)
            row.summary = text
            row.generated_at = _to_naive_utc(generated_at)
            await session.commit()

    async def load_cached_summary(self, location: str) -> Optional[str]:
        async with self.session_maker() as session:
            row = await session.get(SummaryRecord, location)
            return row.summary if row is not None else None

    async def load_cached_summaries(self) -> Dict[str, Summary]:
        async with self.session_maker() as session:
            result = await session.execute(select(SummaryRecord))
            rows = result.scalars().all()
        return {
            row.location: Summary(
                location=row.location,
                text=row.summary,
                generated_at=_from_naive_utc(row.generated_at),
            )
            for row in rows
        }
