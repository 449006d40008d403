# meterdata/services.py
from datetime import datetime, timezone, tzinfo

from . import __version__
from .catalog import DeviceCatalog
from .clients.solar_manager import SolarManagerClient
from .config import Settings
from .fetcher import ChunkedFetcher
from .store import Store
from .sync import SyncEngine

NO_DATA_MESSAGE = "No data available yet. Update local database first."


def parse_time(value: str | None, tz: tzinfo) -> int | None:
    """ISO-8601 -> unix seconds. Values without an offset are read in the local zone."""
    if value is None or value.strip() == "":
        return None
    dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return int(dt.timestamp())


def format_latest(ts: int | None) -> str:
    if ts is None:
        return NO_DATA_MESSAGE
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


def build_sync_engine(settings: Settings, client: SolarManagerClient, store: Store) -> SyncEngine:
    return SyncEngine(
        catalog=DeviceCatalog(client, settings.site_ids),
        fetcher=ChunkedFetcher(client),
        store=store,
        resolution_sec=settings.resolution_sec,
        tz=settings.tz,
    )


def _month_start(year: int, month: int, tz: tzinfo) -> datetime:
    while month < 1:
        year, month = year - 1, month + 12
    while month > 12:
        year, month = year + 1, month - 12
    return datetime(year, month, 1, tzinfo=tz)


def preset_windows(now: datetime) -> list[tuple[str, datetime, datetime | None]]:
    """Common export windows as (label, from, to). `to` is exclusive; None means now."""
    tz = now.tzinfo
    quarter_start = 3 * ((now.month - 1) // 3) + 1
    return [
        ("Last month", _month_start(now.year, now.month - 1, tz), _month_start(now.year, now.month, tz)),
        ("Last quarter", _month_start(now.year, quarter_start - 3, tz), _month_start(now.year, quarter_start, tz)),
        ("Last year", datetime(now.year - 1, 1, 1, tzinfo=tz), datetime(now.year, 1, 1, tzinfo=tz)),
        ("Current year", datetime(now.year, 1, 1, tzinfo=tz), None),
    ]


def _preset_lines(prog: str, now: datetime) -> str:
    lines = []
    for label, start, end in preset_windows(now):
        cmd = f"{prog} --export --from={start.isoformat()}"
        if end is not None:
            cmd += f" --to={end.isoformat()}"
        lines.append(f"    {label}:\n        {cmd}")
    return "\n".join(lines)


def help_text(
    settings: Settings,
    latest: int | None,
    prog: str = "meterdata",
    stored: int | None = None,
    now: datetime | None = None,
) -> str:
    latest_str = NO_DATA_MESSAGE
    if latest is not None:
        latest_str = datetime.fromtimestamp(latest, settings.tz).strftime("%Y-%m-%d %H:%M:%S %Z")
    stored_line = "" if stored is None else f"\nStored readings: {stored}"
    now = datetime.now(settings.tz) if now is None else now.astimezone(settings.tz)
    return f"""Solar Manager Data Exporter v{__version__}

Fetches the data ({settings.resolution_sec}s values) from your smart meters and stores them in a
local database, where you can export it from. Update it regularly, e.g. daily from cron.

Latest entry: {latest_str}{stored_line}

Usage:
    {prog} --update [--from=<from>] [--to=<to>]
    {prog} --export [--from=<from>] [--to=<to>]
    {prog} --latest
    {prog} --logs

Timestamps are ISO-8601. Without --from, an update resumes at the latest data present
(or the first of the current month when the database is empty) and an export starts
with the first record. --to defaults to now.

Common exports:
{_preset_lines(prog, now)}
"""
