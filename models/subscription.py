# models/subscription.py
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class Subscription(BaseModel):
    """
    One browser's registered interest in one or more locations.

    `push` is the browser's PushSubscription JSON (endpoint + keys). It is
    opaque to the pipeline and never serialized back to clients.
    """

    id: UUID
    push: Dict[str, Any] = Field(exclude=True)
    locations: List[str]


def normalize_locations(locations: Iterable[str]) -> List[str]:
    """Drop duplicates and blanks, keeping first-appearance order."""
    seen: List[str] = []
    for loc in locations:
        if loc and loc not in seen:
            seen.append(loc)
    return seen


def merge_locations(
    existing: Iterable[str],
    add: Optional[Iterable[str]] = None,
    remove: Optional[Iterable[str]] = None,
) -> List[str]:
    """(existing ∪ add) minus remove, deduplicated, order of first appearance."""
    removed = set(remove or ())
    merged = normalize_locations(list(existing) + list(add or ()))
    return [loc for loc in merged if loc not in removed]
