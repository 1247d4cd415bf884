"""
Tests for the Open-Meteo weather lookup.
"""

from datetime import datetime, timedelta, timezone

import httpx

from detective.services.cache import Cache
from detective.services.weather import WeatherService, format_conditions


def hourly_payload(day: str):
    return {"hourly": {
        "time": [f"{day}T20:00", f"{day}T21:00"],
        "temperature_2m": [15.0, 14.24],
        "weather_code": [3, 61],
        "wind_speed_10m": [9.0, 11.2],
    }}


class TestFormatConditions:
    def test_full_description(self):
        assert format_conditions(61, 14.24, 11.2) == "Light rain, 14.2°C, wind 11 km/h"

    def test_unknown_code_and_missing_values(self):
        assert format_conditions(42, None, None) == "Weather code 42"
        assert format_conditions(None, None, None) is None


class TestWeatherService:
    """Tests for WeatherService.describe."""

    async def test_historical_lookup_uses_archive(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=hourly_payload("2024-05-04"))

        service = WeatherService(transport=httpx.MockTransport(handler), result_cache=Cache())
        when = datetime(2024, 5, 4, 21, 15, tzinfo=timezone.utc)

        assert await service.describe(29.42, -98.49, when) == "Light rain, 14.2°C, wind 11 km/h"
        assert requests[0].url.host == "archive-api.open-meteo.com"
        assert requests[0].url.params["start_date"] == "2024-05-04"

    async def test_recent_lookup_uses_forecast(self):
        requests = []
        when = datetime.now(timezone.utc) - timedelta(hours=2)
        day = when.date().isoformat()

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            payload = hourly_payload(day)
            payload["hourly"]["time"][1] = when.strftime("%Y-%m-%dT%H:00")
            return httpx.Response(200, json=payload)

        service = WeatherService(transport=httpx.MockTransport(handler), result_cache=Cache())
        assert await service.describe(1.0, 2.0, when) is not None
        assert requests[0].url.host == "api.open-meteo.com"

    async def test_missing_hour_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=hourly_payload("2024-05-04"))

        service = WeatherService(transport=httpx.MockTransport(handler), result_cache=Cache())
        assert await service.describe(1.0, 2.0, datetime(2024, 5, 4, 3, 0)) is None

    async def test_failure_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        service = WeatherService(transport=httpx.MockTransport(handler), result_cache=Cache())
        assert await service.describe(1.0, 2.0, datetime(2024, 5, 4, 21, 0)) is None

    async def test_result_is_cached(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=hourly_payload("2024-05-04"))

        service = WeatherService(transport=httpx.MockTransport(handler), result_cache=Cache())
        when = datetime(2024, 5, 4, 21, 0, tzinfo=timezone.utc)
        await service.describe(1.0, 2.0, when)
        await service.describe(1.0, 2.0, when)
        assert len(calls) == 1
