"""Database setup.

Provides SQLAlchemy engine, session factory, and declarative base.

Defaults to an on-disk SQLite database under ``data/darknova.db`` at the
repository root, but respects an explicit environment override via
``DARKNOVA_DB_URL`` (or ``DARKNOVA_DATABASE_URL``) for testing or a real server.
"""
from __future__ import annotations

import os
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from darknova_core.config import Settings
from urllib.parse import urlparse

Settings().load_backend_env()
_settings = Settings()
_repo_root = _settings.repo_root()
_data_dir = os.path.join(_repo_root, "data")


def _ensure_sqlite_dir(url: str) -> None:
    try:
        parsed = urlparse(url)
        if parsed.scheme == "sqlite" and parsed.path and parsed.path != ":memory:":
            _dir = os.path.dirname(parsed.path)
            if _dir:
                os.makedirs(_dir, exist_ok=True)
    except ValueError:
        # Malformed URLs surface from create_engine instead
        pass


def make_engine(url: str) -> Engine:
    _ensure_sqlite_dir(url)
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


if _settings.db_url:
    DATABASE_URL = _settings.db_url
else:
    os.makedirs(_data_dir, exist_ok=True)
    DATABASE_URL = f"sqlite:///{os.path.join(_data_dir, 'darknova.db')}"

engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

__all__ = [
    "DATABASE_URL",
    "engine",
    "SessionLocal",
    "Base",
    "make_engine",
]
