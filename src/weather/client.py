"""OpenWeather 5-day / 3-hour forecast client.

The public entry point, :meth:`WeatherClient.fetch_forecast`, never raises
for provider trouble: failures are logged and returned as ``None``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from src.config import settings
from src.errors import ExternalFetchError
from src.weather.models import WeatherContext

logger = logging.getLogger(__name__)

PROVIDER = "OpenWeather"


def _day_summary(
    slots: list[dict[str, Any]],
    location: str,
    day: str,
    note: str | None,
    query_day: str,
    days_ahead: int,
) -> WeatherContext:
    temps = [float(s["main"]["temp"]) for s in slots]
    conditions: list[str] = []
    for s in slots:
        desc = s["weather"][0]["description"]
        if desc not in conditions:
            conditions.append(desc)
    middle = slots[len(slots) // 2]
    return WeatherContext(
        location=location,
        date=day,
        day_name=date.fromisoformat(day).strftime("%A"),
        temp_min=min(temps),
        temp_max=max(temps),
        temp_avg=round(sum(temps) / len(temps), 1),
        conditions=conditions,
        rain_probability=round(max(float(s.get("pop", 0)) for s in slots) * 100),
        humidity=int(middle["main"].get("humidity", 0)),
        wind_speed=float(middle.get("wind", {}).get("speed", 0)),
        note=note,
        query_day=query_day,
        days_ahead=days_ahead,
    )


def summarize_forecast(
    data: dict[str, Any],
    target: date,
    query_day: str = "today",
    days_ahead: int = 0,
) -> WeatherContext | None:
    """Collapse the 3-hour forecast list into one day's summary.

    If ``target`` is not in the forecast, the first available date on or
    after it is used (or the last date, if all are earlier) and ``note``
    says so. Returns None for an empty forecast.
    """
    try:
        items = data["list"]
        city = data.get("city", {})
        location = ", ".join(p for p in (city.get("name", ""), city.get("country", "")) if p)
        target_str = target.isoformat()

        slots = [i for i in items if i["dt_txt"].startswith(target_str)]
        note = None
        day = target_str
        if not slots:
            dates: list[str] = []
            for item in items:
                d = item["dt_txt"].split(" ")[0]
                if d not in dates:
                    dates.append(d)
            if not dates:
                return None
            day = next((d for d in dates if d >= target_str), dates[-1])
            slots = [i for i in items if i["dt_txt"].startswith(day)]
            day_name = date.fromisoformat(day).strftime("%A")
            note = (
                f"Using closest available forecast data for {day_name} ({day}) - "
                f"this was the closest to your requested {target_str}"
            )
            logger.info("No forecast for %s, using %s", target_str, day)

        return _day_summary(slots, location, day, note, query_day, days_ahead)
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise ExternalFetchError(PROVIDER, f"malformed forecast payload: {exc}") from exc


class WeatherClient:
    """Fetches and summarizes forecasts for a city and day offset."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_days: int | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.openweather_api_key
        self.base_url = (base_url or settings.openweather_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.weather_timeout_seconds
        self.max_days = max_days if max_days is not None else settings.max_forecast_days

    async def _get_forecast(self, city: str) -> dict[str, Any]:
        params = {"q": city, "units": "metric", "appid": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(f"{self.base_url}/forecast", params=params)
        except httpx.HTTPError as exc:
            raise ExternalFetchError(PROVIDER, str(exc) or type(exc).__name__) from exc

        if resp.status_code != 200:
            raise ExternalFetchError(PROVIDER, resp.text[:200], status=resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise ExternalFetchError(PROVIDER, "response was not JSON") from exc

    async def fetch_forecast(
        self,
        city: str,
        days_ahead: int,
        query_day: str = "today",
        today: date | None = None,
    ) -> WeatherContext | None:
        """Forecast summary for ``city`` ``days_ahead`` days from today, or None."""
        if days_ahead < 0 or days_ahead > self.max_days:
            raise ValueError(f"days_ahead must be within 0..{self.max_days}, got {days_ahead}")
        if not self.api_key:
            logger.warning("OPENWEATHER_API_KEY is not configured; skipping weather lookup")
            return None

        today = today or datetime.now(ZoneInfo(settings.timezone)).date()
        target = today + timedelta(days=days_ahead)
        try:
            data = await self._get_forecast(city)
            summary = summarize_forecast(data, target, query_day, days_ahead)
        except ExternalFetchError as exc:
            logger.warning("Weather lookup failed for %s: %s", city, exc)
            return None

        if summary is None:
            logger.warning("Weather lookup for %s returned an empty forecast", city)
        else:
            logger.info("Weather for %s on %s: %s", city, summary.date, summary.conditions)
        return summary
