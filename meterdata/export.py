# meterdata/export.py
import csv
import io
import time
from datetime import datetime, tzinfo
from itertools import groupby
from typing import Iterator, Mapping

from .store import Store

TIMESTAMP_COLUMN = "timestamp"


def local_timestamp(ts: int, tz: tzinfo) -> str:
    return datetime.fromtimestamp(ts, tz).strftime("%Y-%m-%d %H:%M:%S")


def device_label(device_id: str, device_names: Mapping[str, str]) -> str:
    name = (device_names.get(device_id) or "").strip()
    return f"{name} ({device_id})" if name else device_id


def csv_header(store: Store, start: int, end: int, device_names: Mapping[str, str]) -> dict[str, str]:
    """
    Ordered column key -> label. Device columns come in device id order, two per
    device, for whichever devices have readings in [start, end).
    """
    header = {TIMESTAMP_COLUMN: TIMESTAMP_COLUMN}
    for device_id in store.device_ids_in_window(start, end):
        label = device_label(device_id, device_names)
        header[f"{device_id}_exported"] = f"{label}_exported"
        header[f"{device_id}_imported"] = f"{label}_imported"
    return header


def iter_export_rows(store: Store, start: int, end: int, tz: tzinfo) -> Iterator[dict]:
    """One wide row per distinct timestamp; relies on rows arriving timestamp-sorted."""
    for ts, rows in groupby(store.iter_window(start, end), key=lambda r: r[0]):
        row = {TIMESTAMP_COLUMN: local_timestamp(ts, tz)}
        for _, device_id, exported, imported in rows:
            row[f"{device_id}_exported"] = exported
            row[f"{device_id}_imported"] = imported
        yield row


def _csv_line(values) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(values)
    return buf.getvalue()


def csv_lines(store: Store, header: Mapping[str, str], start: int, end: int, tz: tzinfo) -> Iterator[str]:
    """The header line, then one line per timestamp, columns in header order."""
    yield _csv_line(header.values())
    for row in iter_export_rows(store, start, end, tz):
        yield _csv_line(row.get(key, "") for key in header)


def export_csv(
    store: Store,
    start: int | None,
    end: int | None,
    device_names: Mapping[str, str],
    tz: tzinfo,
) -> Iterator[str]:
    """
    Lazily yields CSV lines: the header, then one line per timestamp.
    A device without a reading at some timestamp gets an empty cell, never 0.
    """
    start = 0 if start is None else start
    end = int(time.time()) if end is None else end

    header = csv_header(store, start, end, device_names)
    yield from csv_lines(store, header, start, end, tz)


def export_filename(start: int | None, end: int, tz: tzinfo) -> str:
    def stamp(ts):
        return datetime.fromtimestamp(ts, tz).strftime("%Y%m%dT%H%M%S")

    first = stamp(start) if start is not None else "start"
    return f"smart_meter_data_{first}-{stamp(end)}.csv"
