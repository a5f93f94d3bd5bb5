"""
SQLAlchemy ORM models.

Purpose:
- subscriptions: one row per registered browser (push capability + location list)
- summaries: latest generated summary per location

Notes:
- locations is stored comma-joined; the list is tiny and only ever read whole,
  so a join table buys nothing here.
- subscription_json holds the browser PushSubscription exactly as received.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from core.db import Base


class SubscriptionRecord(Base):
    """
    Columns:
    - id: time-sortable UUID (string form)
    - locations: comma-separated location keys
    - subscription_json: serialized push capability
    - created_at/updated_at: audit timestamps
    """
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True)
    locations = Column(Text, nullable=False)
    subscription_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SummaryRecord(Base):
    __tablename__ = "summaries"

    location = Column(String(50), primary_key=True)
    summary = Column(Text, nullable=False)
    generated_at = Column(DateTime, nullable=True)
