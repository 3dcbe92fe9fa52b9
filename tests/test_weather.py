import pytest
import requests

from planner.config import Settings
from planner.errors import GeolocationError, WeatherError
from planner.weather import WEATHER_UNAVAILABLE, WeatherClient, load_weather, parse_forecast

FORECAST = {
    "location": {"name": "Boston"},
    "current": {"temp_f": 61.2, "condition": {"text": "Partly cloudy", "icon": "//cdn/116.png"}},
    "forecast": {"forecastday": [{"day": {"maxtemp_f": 66.0, "mintemp_f": 50.5}}]},
}


class FakeResponse:

    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if self.payload is None:
            raise ValueError("no JSON")
        return self.payload


class FakeSession:

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def client(response=None, error=None, key="k"):
    return WeatherClient(key, "https://weather.test/forecast.json", 3.0, FakeSession(response, error))


def test_parse_forecast():
    report = parse_forecast(FORECAST)
    assert report.location == "Boston"
    assert report.temp_f == 61.2
    assert report.max_temp_f == 66.0
    assert report.min_temp_f == 50.5
    assert report.summary == "Today's weather is Partly cloudy at 61.2 °F"


def test_parse_forecast_rejects_unexpected_payload():
    with pytest.raises(WeatherError):
        parse_forecast({"current": {}})
    with pytest.raises(WeatherError):
        parse_forecast({**FORECAST, "forecast": {"forecastday": []}})


def test_fetch_sends_coordinates():
    c = client(FakeResponse(FORECAST))
    assert c.fetch(42.36, -71.06).location == "Boston"
    url, params, timeout = c.session.calls[0]
    assert url == "https://weather.test/forecast.json"
    assert params == {"key": "k", "q": "42.36,-71.06", "days": 1}
    assert timeout == 3.0


@pytest.mark.parametrize("response,error", [
    (FakeResponse(FORECAST, status=403), None),
    (FakeResponse(None), None),
    (None, requests.ConnectionError("down")),
])
def test_fetch_failures_become_weather_errors(response, error):
    with pytest.raises(WeatherError):
        client(response, error).fetch(0, 0)


def test_from_settings():
    c = WeatherClient.from_settings(Settings(weather_api_key="abc", weather_timeout=4.0))
    assert c.api_key == "abc"
    assert c.timeout == 4.0


@pytest.mark.asyncio
async def test_load_weather_success():
    result = await load_weather(lambda: (42.36, -71.06), client(FakeResponse(FORECAST)))
    assert result.get_or_else(None).condition == "Partly cloudy"


@pytest.mark.asyncio
async def test_load_weather_failures():
    def nowhere():
        raise GeolocationError("denied")

    not_configured = await load_weather(lambda: (0, 0), client(FakeResponse(FORECAST), key=""))
    assert not_configured.get_error()["error"] == "weather_unavailable"
    assert (await load_weather(lambda: (0, 0), None)).is_left()

    located = await load_weather(nowhere, client(FakeResponse(FORECAST)))
    assert located.get_error()["error"] == "location_unavailable"

    failed = await load_weather(lambda: (0, 0), client(FakeResponse(FORECAST, status=500)))
    assert failed.get_error()["message"] == WEATHER_UNAVAILABLE
