# meterdata/clients/solar_manager.py
import asyncio
from datetime import datetime, timezone

import aiohttp

from ..config import Settings
from ..errors import AuthError, MalformedResponseError, UpstreamRequestError

LOGIN_PATH = "/v1/oauth/login"
SENSORS_PATH_TEMPLATE = "/v1/info/sensors/{site_id}"
SENSOR_RANGE_PATH_TEMPLATE = "/v1/data/sensor/{device_id}/range"


def api_time(ts: int) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class SolarManagerClient:
    """
    Thin aiohttp wrapper around the Solar Manager cloud API.
    Every call is a single attempt: errors surface to the caller, nothing is retried.
    """

    def __init__(self, settings: Settings, session: aiohttp.ClientSession | None = None):
        self.base = settings.api_url.rstrip("/")
        self._email = settings.email
        self._password = settings.password
        self._token = None
        self._timeout = aiohttp.ClientTimeout(total=settings.request_timeout_sec)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _request_json(self, method: str, url: str, *, params=None, body=None, headers=None):
        session = self._get_session()
        try:
            async with session.request(
                method, url, params=params, json=body, headers=headers, timeout=self._timeout
            ) as resp:
                if resp.status in (401, 403):
                    text = await resp.text()
                    raise AuthError(f"API refused authorization ({resp.status}): {text}")
                if resp.status >= 400:
                    text = await resp.text()
                    raise UpstreamRequestError(f"API error {resp.status} on {url}: {text}", status=resp.status)
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise MalformedResponseError(f"Response of {url} is not valid JSON: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamRequestError(f"Request to {url} failed: {e!r}") from e

    async def login(self) -> str:
        js = await self._request_json(
            "POST", self.base + LOGIN_PATH, body={"email": self._email, "password": self._password}
        )
        token = js.get("accessToken") if isinstance(js, dict) else None
        if not token:
            raise MalformedResponseError(f"Login did not return an access token: {js}")
        self._token = token
        return token

    def _auth_headers(self):
        return {"Authorization": "Bearer " + self._token}

    async def _get(self, url: str, params=None):
        if not self._token:
            await self.login()
        return await self._request_json("GET", url, params=params, headers=self._auth_headers())

    async def get_sensors(self, site_id: str) -> list[dict]:
        url = self.base + SENSORS_PATH_TEMPLATE.format(site_id=site_id)
        body = await self._get(url)
        if not isinstance(body, list):
            raise MalformedResponseError(f"Expected a list of sensors for {site_id}, got: {body!r}")
        return body

    async def get_sensor_range(self, device_id: str, start: int, end: int, interval: int) -> list[dict]:
        """
        Raw records of one sensor over [start, end). The API caps a request at one day;
        chunking is the caller's business.
        """
        url = self.base + SENSOR_RANGE_PATH_TEMPLATE.format(device_id=device_id)
        params = {"from": api_time(start), "to": api_time(end), "interval": str(interval)}
        body = await self._get(url, params=params)
        if not isinstance(body, list):
            raise MalformedResponseError(f"Expected a list of records for sensor {device_id}, got: {body!r}")
        return body
