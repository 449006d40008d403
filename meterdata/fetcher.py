# meterdata/fetcher.py
import logging
from datetime import datetime, timezone
from typing import AsyncIterator

from .clients.solar_manager import SolarManagerClient, api_time
from .errors import MalformedResponseError
from .models import FetchedReading

logger = logging.getLogger(__name__)

# the range endpoint refuses spans longer than one day
MAX_SPAN_SEC = 86400


def parse_api_date(value) -> int:
    if not isinstance(value, str) or not value:
        raise MalformedResponseError(f"Record without a usable date: {value!r}")
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise MalformedResponseError(f"Unparseable record date {value!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def _energy(entry: dict, key: str, legacy_key: str) -> float:
    val = entry.get(key, entry.get(legacy_key))
    if val is None:
        raise MalformedResponseError(f"Record lacks {key}: {entry!r}")
    try:
        return round(float(val), 2)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Non-numeric {key} in record: {entry!r}") from e


def normalize_record(site_id: str, device_id: str, entry) -> FetchedReading:
    if not isinstance(entry, dict):
        raise MalformedResponseError(f"Unexpected record for sensor {device_id}: {entry!r}")
    return FetchedReading(
        site_id=site_id,
        device_id=device_id,
        timestamp=parse_api_date(entry.get("date")),
        energy_exported_wh=_energy(entry, "exportedEnergy", "eWh"),
        energy_imported_wh=_energy(entry, "importedEnergy", "iWh"),
    )


def day_windows(start: int, end: int):
    """Successive [from, to) windows of at most one day covering [start, end)."""
    current = start
    while current < end:
        yield current, min(end, current + MAX_SPAN_SEC)
        current += MAX_SPAN_SEC


class ChunkedFetcher:
    def __init__(self, client: SolarManagerClient):
        self.client = client

    async def fetch(
        self, device_id: str, site_id: str, start: int, end: int, interval: int
    ) -> AsyncIterator[FetchedReading]:
        """
        Readings of one sensor over [start, end), oldest first.
        Not restartable: call again to retry.
        """
        if end - start > MAX_SPAN_SEC:
            for window_start, window_end in day_windows(start, end):
                async for reading in self.fetch(device_id, site_id, window_start, window_end, interval):
                    yield reading
            return
        if start >= end:
            return

        logger.info("Fetching data for smart meter %s from %s to %s", device_id, api_time(start), api_time(end))
        records = await self.client.get_sensor_range(device_id, start, end, interval)
        # upstream order within a window is not guaranteed
        batch = sorted((normalize_record(site_id, device_id, r) for r in records), key=lambda r: r.timestamp)
        for reading in batch:
            yield reading
