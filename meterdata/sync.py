# meterdata/sync.py
import logging
import time
from datetime import datetime, tzinfo
from typing import AsyncIterator, Callable, Iterable

from .catalog import DeviceCatalog
from .clients.solar_manager import api_time
from .fetcher import ChunkedFetcher
from .models import Device, FetchedReading
from .store import Store

logger = logging.getLogger(__name__)


def month_start(ts: int, tz: tzinfo) -> int:
    """First instant of the calendar month containing ts, in the given zone."""
    local = datetime.fromtimestamp(ts, tz)
    return int(local.replace(day=1, hour=0, minute=0, second=0, microsecond=0).timestamp())


class SyncEngine:
    """
    Pulls sub-meter readings from the API into the store.

    Re-running over an overlapping window is safe: the store drops every
    (device_id, timestamp) it already holds.
    """

    def __init__(
        self,
        catalog: DeviceCatalog,
        fetcher: ChunkedFetcher,
        store: Store,
        resolution_sec: int,
        tz: tzinfo,
        clock: Callable[[], float] = time.time,
    ):
        self.catalog = catalog
        self.fetcher = fetcher
        self.store = store
        self.resolution_sec = resolution_sec
        self.tz = tz
        self._clock = clock

    def resume_point(self, device_ids: Iterable[str], end: int) -> int:
        """
        Resume where every active device already has data (the oldest of the
        newest timestamps). Devices ahead of that get re-fetched and deduplicated.
        With nothing stored yet, start at the first day of the current month.
        """
        oldest_newest = self.store.latest_timestamp_across(device_ids, before=end)
        if oldest_newest is not None:
            return oldest_newest
        return month_start(int(self._clock()), self.tz)

    async def _stream(self, devices: list[Device], start: int, end: int) -> AsyncIterator[FetchedReading]:
        for device in devices:
            async for reading in self.fetcher.fetch(device.device_id, device.site_id, start, end, self.resolution_sec):
                yield reading

    async def sync(self, start: int | None = None, end: int | None = None) -> int:
        """Fetch [start, end) for all active sub-meters; returns the number of new rows."""
        began = time.monotonic()
        if end is None:
            end = int(self._clock())
        devices = await self.catalog.list_active_devices()
        if start is None:
            start = self.resume_point([d.device_id for d in devices], end)

        logger.info(
            "Start fetching data from solar manager for %d smart meters (from %s to %s)",
            len(devices), api_time(start), api_time(end),
        )
        written = 0
        batch = []
        async for reading in self._stream(devices, start, end):
            batch.append(reading)
            if len(batch) >= self.store.batch_size:
                written += self.store.upsert_many(batch)
                batch = []
        if batch:
            written += self.store.upsert_many(batch)

        logger.info("Success: %d new readings stored, it took %ds", written, round(time.monotonic() - began))
        return written
