"""
Weather tool.

Provides:
- WeatherClient.fetch_forecast(lat, lon): raw met.no locationforecast JSON bytes.
- filter_forecast_for_day(raw, tz, day): the subset of a multi-day forecast
  that falls on one civil date in the given time zone.
- placeholder_forecast(lat, lon, now): a synthetic, well-formed forecast used
  when USE_PLACEHOLDER is on (local development without provider traffic).

met.no returns `properties.timeseries`, a list of hourly/6-hourly entries:
    {"time": "2026-10-17T06:00:00Z", "data": {"instant": {"details": {...}},
                                              "next_1_hours": {...}, ...}}
"""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import httpx

from core.errors import WeatherFetchError

logger = logging.getLogger(__name__)

MET_API_URL = "https://api.met.no/weatherapi/locationforecast/2.0/compact"


class WeatherClient:
    def __init__(
        self,
        user_agent: str,
        base_url: str = MET_API_URL,
        timeout: float = 10.0,
        use_placeholder: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.user_agent = user_agent
        self.base_url = base_url
        self.use_placeholder = use_placeholder
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def fetch_forecast(self, lat: float, lon: float) -> bytes:
        """
        Raw forecast body for the coordinates.

        Raises WeatherFetchError on transport errors and non-2xx responses.
        """
        if self.use_placeholder:
            return placeholder_forecast(lat, lon)

        # met.no asks for at most four decimals
        params = {"lat": round(float(lat), 4), "lon": round(float(lon), 4)}
        try:
            resp = await self._client.get(
                self.base_url, params=params, headers={"User-Agent": self.user_agent}
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise WeatherFetchError(
                f"weather provider returned {e.response.status_code} for ({lat},{lon})"
            ) from e
        except httpx.HTTPError as e:
            raise WeatherFetchError(f"weather request failed for ({lat},{lon}): {e}") from e
        return resp.content

    async def aclose(self) -> None:
        await self._client.aclose()


def filter_forecast_for_day(raw: bytes, tz: ZoneInfo, day: date) -> Dict[str, Any]:
    """
    Keep only the timeseries entries whose timestamp falls on `day` in `tz`.

    Comparison is by local calendar date, so an entry at 23:00Z belongs to
    the next day in Tokyo and the same day in Los Angeles.
    Raises WeatherFetchError when the body is not a met.no forecast.
    """
    try:
        payload = json.loads(raw)
        properties = payload["properties"]
        timeseries = properties["timeseries"]
    except (ValueError, TypeError, KeyError) as e:
        raise WeatherFetchError(f"malformed forecast body: {e}") from e
    if not isinstance(timeseries, list):
        raise WeatherFetchError("malformed forecast body: timeseries is not a list")

    entries = []
    for item in timeseries:
        if not isinstance(item, dict) or not isinstance(item.get("time"), str):
            continue
        try:
            ts = datetime.fromisoformat(item["time"].replace("Z", "+00:00"))
        except ValueError:
            continue
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        if ts.astimezone(tz).date() == day:
            entries.append(item)

    return {
        "date": day.isoformat(),
        "meta": properties.get("meta", {}),
        "timeseries": entries,
    }


def placeholder_forecast(lat: float, lon: float, now: Optional[datetime] = None) -> bytes:
    """Two days of hourly entries with a gentle temperature curve."""
    now = now or datetime.now(timezone.utc)
    start = now.replace(minute=0, second=0, microsecond=0)
    timeseries = []
    for hour in range(48):
        ts = start + timedelta(hours=hour)
        temp = 14.0 + 6.0 * (1 - abs(ts.hour - 12) / 12)
        timeseries.append({
            "time": ts.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "data": {
                "instant": {
                    "details": {
                        "air_temperature": round(temp, 1),
                        "relative_humidity": 62.0,
                        "wind_speed": 3.4,
                        "cloud_area_fraction": 20.0,
                    }
                },
                "next_1_hours": {
                    "summary": {"symbol_code": "partlycloudy_day" if 6 <= ts.hour < 18 else "clearsky_night"},
                    "details": {"precipitation_amount": 0.0},
                },
            },
        })
    body = {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": {
            "meta": {
                "updated_at": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "units": {
                    "air_temperature": "celsius",
                    "precipitation_amount": "mm",
                    "relative_humidity": "%",
                    "wind_speed": "m/s",
                    "cloud_area_fraction": "%",
                },
            },
            "timeseries": timeseries,
        },
    }
    return json.dumps(body).encode("utf-8")
