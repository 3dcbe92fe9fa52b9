"""Environment-driven settings.

Variables::

    WEATHER_API_KEY            weather service key; empty disables the widget
    WEATHER_API_URL            forecast endpoint
    WEATHER_TIMEOUT_SECONDS    HTTP timeout for the forecast call
    PLANNER_LOG_LEVEL          DEBUG, INFO, WARNING, ...
    PLANNER_NEAR_THRESHOLD     share of the weekly budget that triggers a warning
"""
import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

DEFAULT_WEATHER_URL = "https://api.weatherapi.com/v1/forecast.json"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    weather_api_key: str = ""
    weather_api_url: str = DEFAULT_WEATHER_URL
    weather_timeout: float = 10.0
    log_level: str = "INFO"
    near_threshold: Decimal = Decimal("0.85")

    @property
    def weather_enabled(self) -> bool:
        return bool(self.weather_api_key)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    try:
        timeout = float(env.get("WEATHER_TIMEOUT_SECONDS", "10"))
    except ValueError:
        raise ValueError("WEATHER_TIMEOUT_SECONDS must be a number")
    try:
        near = Decimal(env.get("PLANNER_NEAR_THRESHOLD", "0.85"))
    except InvalidOperation:
        raise ValueError("PLANNER_NEAR_THRESHOLD must be a number")
    if not Decimal("0") < near <= Decimal("1"):
        raise ValueError("PLANNER_NEAR_THRESHOLD must be in (0, 1]")
    return Settings(
        weather_api_key=env.get("WEATHER_API_KEY", "").strip(),
        weather_api_url=env.get("WEATHER_API_URL", DEFAULT_WEATHER_URL),
        weather_timeout=timeout,
        log_level=env.get("PLANNER_LOG_LEVEL", "INFO").upper(),
        near_threshold=near,
    )


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not any(getattr(h, "_planner", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._planner = True
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
