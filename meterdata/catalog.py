# meterdata/catalog.py
import logging

from .clients.solar_manager import SolarManagerClient
from .errors import MalformedResponseError
from .models import Device, DeviceKind

logger = logging.getLogger(__name__)


def parse_sensor(site_id: str, entry) -> Device:
    if not isinstance(entry, dict) or not entry.get("_id"):
        raise MalformedResponseError(f"Sensor entry without id for {site_id}: {entry!r}")
    tag = entry.get("tag") or {}
    name = tag.get("name") if isinstance(tag, dict) else None
    return Device(
        device_id=str(entry["_id"]),
        site_id=site_id,
        display_name=name or "",
        kind=DeviceKind.parse(entry.get("device_type")),
    )


class DeviceCatalog:
    """
    Resolves which sub-meters belong to the configured solar managers.
    Nothing is cached: every call logs in and lists sensors again.
    """

    def __init__(self, client: SolarManagerClient, site_ids):
        self.client = client
        self.site_ids = tuple(site_ids)

    async def list_active_devices(self) -> list[Device]:
        await self.client.login()
        devices = []
        for site_id in self.site_ids:
            sensors = await self.client.get_sensors(site_id)
            found = [parse_sensor(site_id, s) for s in sensors]
            sub_meters = [d for d in found if d.kind is DeviceKind.SUB_METER]
            logger.debug("Site %s: %d sensors, %d sub-meters", site_id, len(found), len(sub_meters))
            devices.extend(sub_meters)
        return devices

    async def resolve_active_devices(self) -> dict[str, str]:
        """device_id -> display name, flattened across sites (last site wins on id clash)."""
        return {d.device_id: d.display_name for d in await self.list_active_devices()}
