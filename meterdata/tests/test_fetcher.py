"""Tests for ChunkedFetcher: day-sized chunking, ordering and normalization."""

from __future__ import annotations

import math

import pytest

from meterdata.errors import MalformedResponseError
from meterdata.fetcher import ChunkedFetcher, day_windows, normalize_record, parse_api_date
from meterdata.tests.conftest import DAY_END, DAY_START, FakeSolarManager


async def collect(agen) -> list:
    return [item async for item in agen]


class TestChunking:
    @pytest.mark.asyncio
    async def test_multi_day_window_is_complete_and_sorted(self) -> None:
        upstream = FakeSolarManager()
        end = DAY_START + 250000
        out = await collect(ChunkedFetcher(upstream).fetch("devA", "site-1", DAY_START, end, 300))

        stamps = [r.timestamp for r in out]
        assert stamps == sorted(stamps)
        assert len(stamps) == len(set(stamps))
        assert len(stamps) == math.ceil(250000 / 300)
        assert stamps[0] == DAY_START
        assert stamps[-1] < end

        assert [(s, e) for _, s, e, _ in upstream.range_calls] == [
            (DAY_START, DAY_START + 86400),
            (DAY_START + 86400, DAY_START + 172800),
            (DAY_START + 172800, end),
        ]

    @pytest.mark.asyncio
    async def test_single_day_is_one_request(self) -> None:
        upstream = FakeSolarManager()
        out = await collect(ChunkedFetcher(upstream).fetch("devA", "site-1", DAY_START, DAY_END, 900))
        assert upstream.range_calls == [("devA", DAY_START, DAY_END, 900)]
        assert len(out) == 96
        assert [r.timestamp for r in out] == sorted(r.timestamp for r in out)

    @pytest.mark.asyncio
    async def test_empty_window_makes_no_request(self) -> None:
        upstream = FakeSolarManager()
        assert await collect(ChunkedFetcher(upstream).fetch("devA", "site-1", DAY_END, DAY_START, 300)) == []
        assert upstream.range_calls == []

    def test_day_windows_clamp_last_window(self) -> None:
        assert list(day_windows(0, 200000)) == [(0, 86400), (86400, 172800), (172800, 200000)]
        assert list(day_windows(5, 5)) == []


class TestNormalization:
    def test_values_rounded_and_timestamp_parsed(self) -> None:
        r = normalize_record("site-1", "devA", {
            "date": "2024-01-01T00:05:00Z", "exportedEnergy": 12.3456, "importedEnergy": "0.004",
        })
        assert r.timestamp == DAY_START + 300
        assert r.energy_exported_wh == 12.35
        assert r.energy_imported_wh == 0.0
        assert (r.site_id, r.device_id) == ("site-1", "devA")

    def test_legacy_field_names_accepted(self) -> None:
        r = normalize_record("s", "d", {"date": "2024-01-01T00:00:00.000Z", "eWh": 1.111, "iWh": 2.226})
        assert (r.energy_exported_wh, r.energy_imported_wh) == (1.11, 2.23)

    def test_offset_dates_are_converted_to_utc(self) -> None:
        assert parse_api_date("2024-01-01T01:00:00+01:00") == DAY_START

    @pytest.mark.parametrize("entry", [
        {"exportedEnergy": 1, "importedEnergy": 1},
        {"date": "yesterday", "exportedEnergy": 1, "importedEnergy": 1},
        {"date": "2024-01-01T00:00:00Z", "importedEnergy": 1},
        {"date": "2024-01-01T00:00:00Z", "exportedEnergy": "n/a", "importedEnergy": 1},
        "not a record",
    ])
    def test_bad_records_are_malformed(self, entry) -> None:
        with pytest.raises(MalformedResponseError):
            normalize_record("s", "d", entry)
