# meterdata/cli.py
import argparse
import asyncio
import logging
import sys
import time

from .catalog import DeviceCatalog
from .clients.solar_manager import SolarManagerClient
from .config import Settings
from .errors import MeterDataError
from .export import export_csv
from .log import configure_logging, read_log
from .services import build_sync_engine, format_latest, help_text, parse_time
from .store import Store

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_HELP = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="meterdata", description="Solar Manager Data Exporter")
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--update", action="store_true", help="Update the local database from the solar manager API")
    action.add_argument("--export", action="store_true", help="Export the local database as CSV to stdout")
    action.add_argument("--latest", action="store_true", help="Show the latest timestamp in the local database")
    action.add_argument("--logs", action="store_true", help="Show the error log")
    parser.add_argument("--from", dest="from_", metavar="FROM", help="ISO-8601 timestamp")
    parser.add_argument("--to", metavar="TO", help="ISO-8601 timestamp (default: now)")
    return parser


async def _update(settings: Settings, store: Store, start, end) -> int:
    async with SolarManagerClient(settings) as client:
        return await build_sync_engine(settings, client, store).sync(start, end)


async def _device_names(settings: Settings) -> dict:
    async with SolarManagerClient(settings) as client:
        return await DeviceCatalog(client, settings.site_ids).resolve_active_devices()


def run(args, settings: Settings, start: int | None, end: int | None, out=None) -> int:
    out = sys.stdout if out is None else out
    store = Store.from_settings(settings)
    store.ensure_schema()

    if args.update:
        asyncio.run(_update(settings, store, start, end))
    elif args.export:
        end = int(time.time()) if end is None else end
        names = asyncio.run(_device_names(settings))
        for line in export_csv(store, start, end, names, settings.tz):
            out.write(line)
    elif args.latest:
        out.write(format_latest(store.global_latest_timestamp()) + "\n")
    elif args.logs:
        out.write(read_log(settings.log_path))
    else:
        out.write(help_text(settings, store.global_latest_timestamp(), stored=store.count()))
        return EXIT_HELP
    return EXIT_OK


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env()
    except MeterDataError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    configure_logging(settings)
    try:
        start = parse_time(args.from_, settings.tz)
        end = parse_time(args.to, settings.tz)
    except ValueError as e:
        logger.error("Invalid timestamp: %s", e)
        print(f"Error: invalid timestamp: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        return run(args, settings, start, end)
    except MeterDataError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
