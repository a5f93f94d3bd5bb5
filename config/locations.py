"""
Supported locations.

The set is fixed configuration: keys are the public identifiers used in
registration requests, summary URLs and push payloads.
"""
import logging
from typing import Dict, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.errors import LocationConfigError
from models.location import Location

logger = logging.getLogger(__name__)

SUPPORTED_LOCATIONS = (
    Location(key="london", display_name="London", lat=51.507351, lon=-0.127758, tz_name="Europe/London"),
    Location(key="sf", display_name="San Francisco", lat=37.774929, lon=-122.419418, tz_name="America/Los_Angeles"),
    Location(key="sj", display_name="San Jose", lat=37.338207, lon=-121.886330, tz_name="America/Los_Angeles"),
    Location(key="la", display_name="Los Angeles", lat=34.052235, lon=-118.243683, tz_name="America/Los_Angeles"),
    Location(key="nyc", display_name="New York City", lat=40.712776, lon=-74.005974, tz_name="America/New_York"),
    Location(key="tokyo", display_name="Tokyo", lat=35.689487, lon=139.691711, tz_name="Asia/Tokyo"),
    Location(key="warsaw", display_name="Warsaw", lat=52.229675, lon=21.012230, tz_name="Europe/Warsaw"),
    Location(key="zurich", display_name="Zurich", lat=47.369019, lon=8.538030, tz_name="Europe/Zurich"),
    Location(key="berlin", display_name="Berlin", lat=52.520008, lon=13.404954, tz_name="Europe/Berlin"),
    Location(key="dubai", display_name="Dubai", lat=25.204849, lon=55.270782, tz_name="Asia/Dubai"),
    Location(key="paris", display_name="Paris", lat=48.864716, lon=2.349014, tz_name="Europe/Paris"),
)


def load_locations(entries: Iterable[Location] = SUPPORTED_LOCATIONS) -> Dict[str, Location]:
    """
    Index locations by key, checking that every time zone resolves.

    Raises LocationConfigError on an unknown zone or a duplicate key; the
    service cannot schedule updates without them, so callers treat it as fatal.
    """
    locations: Dict[str, Location] = {}
    for loc in entries:
        if loc.key in locations:
            raise LocationConfigError(f"duplicate location key: {loc.key}")
        try:
            ZoneInfo(loc.tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise LocationConfigError(f"unknown time zone {loc.tz_name!r} for location {loc.key}") from e
        locations[loc.key] = loc
    logger.info("Loaded %d supported locations", len(locations))
    return locations
