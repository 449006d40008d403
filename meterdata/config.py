# meterdata/config.py
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigError

DEFAULT_API_URL = "https://cloud.solar-manager.ch"
DEFAULT_DB_URL = "sqlite:///./storage/db.sqlite"
DEFAULT_LOG_PATH = "./storage/errors.log"
DEFAULT_TZ = "Europe/Zurich"

# sampling intervals offered by the range endpoint
ALLOWED_RESOLUTIONS = (10, 300, 900)


@dataclass(frozen=True)
class Settings:
    email: str
    password: str
    site_ids: tuple[str, ...]
    api_url: str = DEFAULT_API_URL
    resolution_sec: int = 300
    request_timeout_sec: float = 60
    db_url: str = DEFAULT_DB_URL
    log_path: str = DEFAULT_LOG_PATH
    tz_name: str = DEFAULT_TZ
    sql_echo: bool = False

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.tz_name)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.
        Every problem found is reported at once in a single ConfigError.
        """
        env = os.environ if environ is None else environ
        problems = []

        email = env.get("SOLAR_MANAGER_EMAIL", "").strip()
        password = env.get("SOLAR_MANAGER_PASSWORD", "")
        site_ids = tuple(s.strip() for s in env.get("SOLAR_MANAGER_IDS", "").split(",") if s.strip())
        if not email:
            problems.append("SOLAR_MANAGER_EMAIL is not set")
        if not password:
            problems.append("SOLAR_MANAGER_PASSWORD is not set")
        if not site_ids:
            problems.append("SOLAR_MANAGER_IDS must list at least one solar manager id")

        resolution = _int_var(env, "SENSOR_RESOLUTION_SEC", 300, problems)
        if resolution is not None and resolution not in ALLOWED_RESOLUTIONS:
            problems.append(f"SENSOR_RESOLUTION_SEC must be one of {ALLOWED_RESOLUTIONS}, got {resolution}")

        timeout = _int_var(env, "REQUEST_TIMEOUT_SEC", 60, problems)
        if timeout is not None and timeout <= 0:
            problems.append("REQUEST_TIMEOUT_SEC must be positive")

        tz_name = env.get("APP_TZ", DEFAULT_TZ)
        try:
            ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            problems.append(f"APP_TZ is not a known time zone: {tz_name!r}")

        if problems:
            raise ConfigError("Invalid configuration: " + "; ".join(problems))

        return cls(
            email=email,
            password=password,
            site_ids=site_ids,
            api_url=env.get("SOLAR_MANAGER_API_URL", DEFAULT_API_URL).rstrip("/"),
            resolution_sec=resolution,
            request_timeout_sec=timeout,
            db_url=env.get("DB_URL", DEFAULT_DB_URL),
            log_path=env.get("LOG_PATH", DEFAULT_LOG_PATH),
            tz_name=tz_name,
            sql_echo=env.get("SQL_ECHO", "0") == "1",
        )


def _int_var(env: Mapping[str, str], name: str, default: int, problems: list) -> int | None:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        problems.append(f"{name} must be an integer, got {raw!r}")
        return None


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
