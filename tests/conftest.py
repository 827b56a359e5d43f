"""Shared test fixtures."""

from datetime import date

import pytest

from src.context.extractor import ContextExtractor
from src.context.memory import InMemoryStore
from src.weather.models import WeatherContext

# A Monday.
MONDAY = date(2026, 10, 19)


def forecast_slot(
    dt_txt: str,
    temp: float,
    description: str = "light rain",
    pop: float = 0.2,
    humidity: int = 70,
    wind: float = 3.5,
) -> dict:
    """One 3-hour entry of an OpenWeather /forecast response."""
    return {
        "dt_txt": dt_txt,
        "main": {"temp": temp, "humidity": humidity},
        "weather": [{"description": description}],
        "pop": pop,
        "wind": {"speed": wind},
    }


@pytest.fixture
def forecast_payload() -> dict:
    """Paris forecast covering Tuesday 2026-10-20 and Wednesday 2026-10-21."""
    return {
        "city": {"name": "Paris", "country": "FR"},
        "list": [
            forecast_slot("2026-10-20 09:00:00", 14.0, pop=0.2),
            forecast_slot("2026-10-20 12:00:00", 18.0, pop=0.6),
            forecast_slot(
                "2026-10-20 15:00:00", 19.0, "overcast clouds", pop=0.4, humidity=65, wind=4.1
            ),
            forecast_slot("2026-10-21 12:00:00", 16.0, "clear sky", pop=0.0),
        ],
    }


@pytest.fixture
def weather_context() -> WeatherContext:
    return WeatherContext(
        location="Paris, FR",
        date="2026-10-20",
        day_name="Tuesday",
        temp_min=16.0,
        temp_max=23.0,
        temp_avg=20.0,
        conditions=["light rain"],
        rain_probability=40,
        humidity=70,
        wind_speed=3.5,
        query_day="tomorrow",
        days_ahead=1,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore(ttl_seconds=3600, max_conversations=100)


@pytest.fixture
def extractor(store: InMemoryStore) -> ContextExtractor:
    return ContextExtractor(store, lookback=6)
