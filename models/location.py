# models/location.py
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict


class Location(BaseModel):
    """A supported point of interest. Configured at startup, never user-created."""

    model_config = ConfigDict(frozen=True)

    key: str
    display_name: str
    lat: float
    lon: float
    tz_name: str  # IANA zone, e.g. "Europe/London"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.tz_name)
