"""Shared fixtures: settings, temporary SQLite store, and a fake Solar Manager API."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from meterdata.config import Settings
from meterdata.models import FetchedReading
from meterdata.store import Store

# 2024-01-01T00:00:00Z
DAY_START = 1704067200
DAY_END = DAY_START + 86400


def iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def reading(device_id: str, ts: int, exported: float = 1.0, imported: float = 0.5, site_id: str = "site-1"):
    return FetchedReading(
        site_id=site_id,
        device_id=device_id,
        timestamp=ts,
        energy_exported_wh=exported,
        energy_imported_wh=imported,
    )


class FakeSolarManager:
    """
    Stands in for SolarManagerClient. Range requests return one record per
    interval over [from, to), newest first, so callers must sort.
    """

    def __init__(self, sensors: dict[str, list[dict]] | None = None, with_samples: bool = True):
        self.sensors = sensors or {}
        self.with_samples = with_samples
        self.logins = 0
        self.sensor_calls: list[str] = []
        self.range_calls: list[tuple] = []

    async def login(self) -> str:
        self.logins += 1
        return "token"

    async def get_sensors(self, site_id: str) -> list[dict]:
        self.sensor_calls.append(site_id)
        return self.sensors.get(site_id, [])

    async def get_sensor_range(self, device_id: str, start: int, end: int, interval: int) -> list[dict]:
        self.range_calls.append((device_id, start, end, interval))
        if not self.with_samples:
            return []
        records = [
            {"date": iso(ts), "exportedEnergy": 1.234, "importedEnergy": 0.5}
            for ts in range(start, end, interval)
        ]
        return list(reversed(records))


def sensor(device_id: str, name: str, device_type: str = "sub-meter") -> dict:
    return {"_id": device_id, "device_type": device_type, "tag": {"name": name}}


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        email="user@example.com",
        password="secret",
        site_ids=("site-1",),
        api_url="https://api.test",
        resolution_sec=300,
        request_timeout_sec=5,
        db_url=f"sqlite:///{tmp_path / 'db.sqlite'}",
        log_path=str(tmp_path / "errors.log"),
        tz_name="UTC",
    )


@pytest.fixture
def store(settings: Settings) -> Store:
    s = Store.from_settings(settings)
    s.ensure_schema()
    return s


@pytest.fixture
def fake_upstream() -> FakeSolarManager:
    return FakeSolarManager(
        sensors={
            "site-1": [
                sensor("devA", "Heat pump"),
                sensor("devB", "Garage"),
                sensor("main", "Grid", device_type="primary-meter"),
                sensor("inv", "Inverter", device_type="inverter"),
            ]
        }
    )
