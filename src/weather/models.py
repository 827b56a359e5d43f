"""External context attached to a chat turn."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Literal


@dataclass(frozen=True)
class WeatherContext:
    """One day's forecast summary for a location.

    Attributes:
        location: "City, CC" as reported by the provider.
        date: ISO date the summary covers.
        day_name: Weekday name of ``date``.
        temp_min / temp_max / temp_avg: Degrees Celsius across the day's slots.
        conditions: Unique condition descriptions, in forecast order.
        rain_probability: Highest precipitation probability of the day, in percent.
        humidity: Percent, from the middle slot of the day.
        wind_speed: m/s, from the middle slot of the day.
        note: Set when the requested date was unavailable and a nearby one was used.
        query_day: The day phrase the user asked about ("tomorrow", "friday").
        days_ahead: Offset of the requested day from today.
    """

    location: str
    date: str
    day_name: str
    temp_min: float
    temp_max: float
    temp_avg: float
    conditions: list[str] = field(default_factory=list)
    rain_probability: int = 0
    humidity: int = 0
    wind_speed: float = 0.0
    note: str | None = None
    query_day: str = "today"
    days_ahead: int = 0
    kind: Literal["weather"] = "weather"

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["note"] is None:
            del data["note"]
        return data


# Every kind of external context a turn can carry. Consumers switch on ``kind``.
ExternalContext = WeatherContext
