import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import requests

from planner.config import DEFAULT_WEATHER_URL, Settings
from planner.errors import GeolocationError, WeatherError
from planner.functional import Either, Right, failure

logger = logging.getLogger(__name__)

WEATHER_UNAVAILABLE = "Failed to fetch weather data."

Locator = Callable[[], Tuple[float, float]]


@dataclass(frozen=True)
class WeatherReport:
    location: str
    temp_f: float
    condition: str
    icon: str
    max_temp_f: float
    min_temp_f: float

    @property
    def summary(self) -> str:
        return f"Today's weather is {self.condition} at {self.temp_f} °F"


def parse_forecast(data: dict) -> WeatherReport:
    try:
        current = data["current"]
        today = data["forecast"]["forecastday"][0]["day"]
        return WeatherReport(
            location=data["location"]["name"],
            temp_f=float(current["temp_f"]),
            condition=current["condition"]["text"],
            icon=current["condition"].get("icon", ""),
            max_temp_f=float(today["maxtemp_f"]),
            min_temp_f=float(today["mintemp_f"]),
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise WeatherError(f"unexpected forecast payload: {e!r}")


class WeatherClient:

    def __init__(self, api_key: str, base_url: str = DEFAULT_WEATHER_URL,
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "WeatherClient":
        return cls(settings.weather_api_key, settings.weather_api_url, settings.weather_timeout)

    def fetch(self, latitude: float, longitude: float) -> WeatherReport:
        params = {"key": self.api_key, "q": f"{latitude},{longitude}", "days": 1}
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise WeatherError(f"forecast request failed: {e}")
        except ValueError as e:
            raise WeatherError(f"forecast response is not JSON: {e}")
        return parse_forecast(data)


async def load_weather(locate: Locator, client: Optional[WeatherClient]) -> Either[dict, WeatherReport]:
    """One-shot location lookup followed by a forecast fetch.

    Any failure comes back as a Left so the widget can show its error state.
    """
    if client is None or not client.api_key:
        return failure("weather_unavailable", "Weather is not configured.")
    try:
        latitude, longitude = await asyncio.to_thread(locate)
    except GeolocationError as e:
        logger.warning("location lookup failed: %s", e)
        return failure("location_unavailable", "Could not determine your location.", detail=str(e))
    try:
        report = await asyncio.to_thread(client.fetch, latitude, longitude)
    except WeatherError as e:
        logger.warning("weather lookup failed: %s", e)
        return failure("weather_unavailable", WEATHER_UNAVAILABLE, detail=str(e))
    return Right(report)
