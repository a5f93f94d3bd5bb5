# services/summary_cache.py
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from models.summary import Summary

logger = logging.getLogger(__name__)


class SummaryCache:
    """
    Latest summary per location.

    Each store replaces the whole Summary object in a single dict assignment,
    so readers see either the old summary or the new one, never a mix.
    Only the scheduler's single in-flight generation per location writes.
    """

    def __init__(self):
        self._summaries: Dict[str, Summary] = {}

    def store(self, location: str, text: str, generated_at: Optional[datetime] = None) -> Summary:
        summary = Summary(
            location=location,
            text=text,
            generated_at=generated_at or datetime.now(timezone.utc),
        )
        self._summaries[location] = summary
        return summary

    def load(self, location: str) -> Optional[str]:
        summary = self._summaries.get(location)
        return summary.text if summary is not None else None

    def get(self, location: str) -> Optional[Summary]:
        return self._summaries.get(location)

    def warm(self, summaries: Iterable[Summary]) -> None:
        """Seed from persisted summaries at startup."""
        for summary in summaries:
            self._summaries[summary.location] = summary
        logger.info("Summary cache warmed with %d persisted summaries", len(self._summaries))

    def __contains__(self, location: str) -> bool:
        return location in self._summaries
