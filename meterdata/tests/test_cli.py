"""Tests for the command line front end."""

from __future__ import annotations

import io

import pytest

from meterdata import cli
from meterdata.services import parse_time
from meterdata.tests.conftest import DAY_START, reading


def run(settings, *argv) -> tuple[int, str]:
    out = io.StringIO()
    args = cli.build_parser().parse_args(list(argv))
    start = parse_time(args.from_, settings.tz)
    end = parse_time(args.to, settings.tz)
    code = cli.run(args, settings, start, end, out=out)
    return code, out.getvalue()


@pytest.fixture
def env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("SOLAR_MANAGER_EMAIL", "user@example.com")
    monkeypatch.setenv("SOLAR_MANAGER_PASSWORD", "secret")
    monkeypatch.setenv("SOLAR_MANAGER_IDS", "site-1")
    monkeypatch.setenv("DB_URL", f"sqlite:///{tmp_path / 'db.sqlite'}")
    monkeypatch.setenv("LOG_PATH", str(tmp_path / "errors.log"))
    monkeypatch.setenv("APP_TZ", "UTC")
    monkeypatch.setattr(cli, "configure_logging", lambda _settings: None)


class TestCli:
    def test_no_action_prints_help(self, settings, store) -> None:
        store.upsert_many([reading("devA", DAY_START), reading("devB", DAY_START)])
        code, text = run(settings)
        assert code == cli.EXIT_HELP
        assert "--update" in text
        assert "Stored readings: 2" in text
        assert "Last quarter:" in text

    def test_latest(self, settings, store) -> None:
        store.upsert_many([reading("devA", DAY_START)])
        code, text = run(settings, "--latest")
        assert code == cli.EXIT_OK
        assert text == "2024-01-01T00:00:00+00:00\n"

    def test_export_writes_csv(self, settings, store, monkeypatch) -> None:
        async def names(_settings):
            return {"devA": "Heat pump"}

        monkeypatch.setattr(cli, "_device_names", names)
        store.upsert_many([reading("devA", DAY_START, 2.0, 1.0)])
        code, text = run(settings, "--export", "--from=2024-01-01T00:00:00Z", "--to=2024-01-02T00:00:00Z")
        assert code == cli.EXIT_OK
        assert text.splitlines() == [
            "timestamp,Heat pump (devA)_exported,Heat pump (devA)_imported",
            "2024-01-01 00:00:00,2.0,1.0",
        ]

    def test_update_passes_window(self, settings, store, monkeypatch) -> None:
        seen = {}

        async def update(_settings, _store, start, end):
            seen["window"] = (start, end)
            return 0

        monkeypatch.setattr(cli, "_update", update)
        code, _ = run(settings, "--update", "--from=2024-01-01T00:00:00Z")
        assert code == cli.EXIT_OK
        assert seen["window"] == (DAY_START, None)

    def test_actions_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--update", "--export"])

    def test_missing_configuration_exits_with_error(self, monkeypatch, capsys) -> None:
        for var in ("SOLAR_MANAGER_EMAIL", "SOLAR_MANAGER_PASSWORD", "SOLAR_MANAGER_IDS"):
            monkeypatch.delenv(var, raising=False)
        assert cli.main(["--latest"]) == cli.EXIT_ERROR
        assert "SOLAR_MANAGER_EMAIL" in capsys.readouterr().err

    def test_bad_timestamp_exits_with_error(self, env, capsys) -> None:
        assert cli.main(["--latest", "--from=garbage"]) == cli.EXIT_ERROR
        assert "invalid timestamp" in capsys.readouterr().err

    def test_value_errors_from_commands_are_not_reported_as_timestamps(self, env, monkeypatch) -> None:
        def broken(*_args, **_kwargs):
            raise ValueError("unrelated")

        monkeypatch.setattr(cli, "run", broken)
        with pytest.raises(ValueError, match="unrelated"):
            cli.main(["--latest", "--from=2024-01-01T00:00:00Z"])

    def test_main_runs_the_command(self, env, capsys) -> None:
        assert cli.main(["--latest"]) == cli.EXIT_OK
        assert "No data available yet" in capsys.readouterr().out
