# meterdata/db.py
import urllib.parse
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def _ensure_sqlite_dir(url: str):
    if not url.startswith("sqlite") or "sqlite:///" not in url:
        return
    # Extract filesystem path after sqlite:///
    raw_path = url.split("sqlite:///", 1)[-1]
    if not raw_path or raw_path == ":memory:":
        return
    fs_path = Path(urllib.parse.unquote(raw_path))
    if not fs_path.is_absolute():
        fs_path = Path.cwd() / fs_path
    fs_path.parent.mkdir(parents=True, exist_ok=True)


def make_engine(url: str, echo: bool = False) -> Engine:
    _ensure_sqlite_dir(url)
    return create_engine(
        url,
        echo=echo,
        future=True,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {}
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
