"""
Historical and current weather for the incident location (Open-Meteo).
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from detective.config import settings
from detective.services.cache import Cache, cache

logger = logging.getLogger(__name__)

# WMO weather interpretation codes
WEATHER_CODES = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Light rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Light snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Light rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Light snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with light hail",
    99: "Thunderstorm with heavy hail",
}

# The archive API lags real time by a few days
ARCHIVE_DELAY = timedelta(days=5)


def format_conditions(code: Optional[int], temperature: Optional[float], wind: Optional[float]) -> Optional[str]:
    parts = []
    if code is not None:
        parts.append(WEATHER_CODES.get(int(code), f"Weather code {int(code)}"))
    if temperature is not None:
        parts.append(f"{temperature:.1f}°C")
    if wind is not None:
        parts.append(f"wind {wind:.0f} km/h")
    return ", ".join(parts) or None


class WeatherService:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, result_cache: Optional[Cache] = None):
        self._transport = transport
        self._cache = result_cache or cache

    async def describe(self, lat: float, lng: float, when: datetime) -> Optional[str]:
        """Short description of the weather at a place and hour, or None."""
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        when = when.astimezone(timezone.utc)
        day = when.date().isoformat()

        cache_key = f"weather:{lat:.3f}:{lng:.3f}:{day}:{when.hour}"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return cached

        use_archive = datetime.now(timezone.utc) - when > ARCHIVE_DELAY
        url = settings.weather_archive_url if use_archive else settings.weather_forecast_url
        params = {
            "latitude": lat,
            "longitude": lng,
            "hourly": "temperature_2m,weather_code,wind_speed_10m",
            "start_date": day,
            "end_date": day,
            "timezone": "UTC",
        }

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                hourly = response.json().get("hourly") or {}
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Weather lookup failed for {lat},{lng} at {when.isoformat()}: {e}")
            return None

        hour_key = when.strftime("%Y-%m-%dT%H:00")
        times = hourly.get("time") or []
        if hour_key not in times:
            logger.info(f"No weather data for {hour_key}")
            return None
        index = times.index(hour_key)

        def value_at(series: str):
            values = hourly.get(series) or []
            return values[index] if index < len(values) else None

        description = format_conditions(
            value_at("weather_code"), value_at("temperature_2m"), value_at("wind_speed_10m")
        )
        if description:
            await self._cache.set(cache_key, description, 3600)
        return description


# Global instance
weather_service = WeatherService()
