# models/summary.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Summary(BaseModel):
    location: str
    text: str
    generated_at: Optional[datetime] = None


class PushPayload(BaseModel):
    """Body of every Web Push message; the service worker reads both fields."""

    summary: str
    location: str
