# meterdata/main.py
import logging
import time
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from . import __version__
from .catalog import DeviceCatalog
from .clients.solar_manager import SolarManagerClient
from .config import Settings, get_settings
from .errors import MeterDataError
from .export import csv_header, csv_lines, export_filename
from .log import configure_logging, read_log
from .services import build_sync_engine, format_latest, help_text, parse_time
from .store import Store

logger = logging.getLogger(__name__)

app = FastAPI(title="Solar Manager Data Exporter", version=__version__)


@lru_cache
def _store_for(settings: Settings) -> Store:
    store = Store.from_settings(settings)
    store.ensure_schema()
    return store


def get_store(settings: Settings = Depends(get_settings)) -> Store:
    return _store_for(settings)


async def get_client(settings: Settings = Depends(get_settings)):
    async with SolarManagerClient(settings) as client:
        yield client


def _window(from_: str | None, to: str | None, settings: Settings):
    try:
        return parse_time(from_, settings.tz), parse_time(to, settings.tz)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid timestamp: {e}")


@app.exception_handler(MeterDataError)
async def meterdata_error_handler(request: Request, exc: MeterDataError):
    logger.error("%s failed: %s", request.url.path, exc)
    return PlainTextResponse(f"Error: {exc}\n", status_code=500)


@app.on_event("startup")
async def startup():
    configure_logging(get_settings())


@app.get("/", response_class=PlainTextResponse)
def index(settings: Settings = Depends(get_settings), store: Store = Depends(get_store)):
    return help_text(settings, store.global_latest_timestamp(), stored=store.count())


@app.get("/update", response_class=PlainTextResponse)
async def update(
    from_: str | None = Query(None, alias="from"),
    to: str | None = Query(None),
    settings: Settings = Depends(get_settings),
    store: Store = Depends(get_store),
    client: SolarManagerClient = Depends(get_client),
):
    start, end = _window(from_, to, settings)
    began = time.monotonic()
    written = await build_sync_engine(settings, client, store).sync(start, end)
    return f"success. {written} new readings stored, it took {round(time.monotonic() - began)}s\n"


def _logged_stream(lines, what: str):
    # the response status is already sent once streaming starts
    try:
        yield from lines
    except MeterDataError as e:
        logger.error("%s failed while streaming: %s", what, e)
        raise


@app.get("/export")
async def export(
    from_: str | None = Query(None, alias="from"),
    to: str | None = Query(None),
    settings: Settings = Depends(get_settings),
    store: Store = Depends(get_store),
    client: SolarManagerClient = Depends(get_client),
):
    start, end = _window(from_, to, settings)
    if end is None:
        end = int(time.time())
    names = await DeviceCatalog(client, settings.site_ids).resolve_active_devices()
    first = 0 if start is None else start
    header = csv_header(store, first, end, names)
    filename = export_filename(start, end, settings.tz)
    return StreamingResponse(
        _logged_stream(csv_lines(store, header, first, end, settings.tz), "/export"),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/latest", response_class=PlainTextResponse)
def latest(store: Store = Depends(get_store)):
    return format_latest(store.global_latest_timestamp()) + "\n"


@app.get("/logs", response_class=PlainTextResponse)
def logs(settings: Settings = Depends(get_settings)):
    return read_log(settings.log_path)
