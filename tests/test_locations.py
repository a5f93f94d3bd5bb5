import pytest

from config.locations import SUPPORTED_LOCATIONS, load_locations
from core.errors import LocationConfigError
from models.location import Location


def test_supported_locations_resolve():
    locations = load_locations()

    assert list(locations) == [loc.key for loc in SUPPORTED_LOCATIONS]
    assert locations["tokyo"].tz.key == "Asia/Tokyo"


def test_unknown_time_zone_is_fatal():
    with pytest.raises(LocationConfigError):
        load_locations([Location(key="mars", display_name="Mars", lat=0, lon=0, tz_name="Mars/Olympus_Mons")])


def test_duplicate_key_is_fatal():
    london = SUPPORTED_LOCATIONS[0]

    with pytest.raises(LocationConfigError):
        load_locations([london, london])
