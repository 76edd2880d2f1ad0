"""Storage initialization helper for Darknova.

Creates all tables (relational adapter) and seeds the single administrator
account on first run. Safe to call repeatedly.
"""
from __future__ import annotations
from typing import Optional

from darknova_core.config import STORAGE_SQL, Settings, load_settings
from darknova_core.repositories import Repositories, build_repositories


def init_db(create_admin: bool = True, settings: Optional[Settings] = None, repos: Optional[Repositories] = None) -> Repositories:
    """Create tables and optional seed records.

    Parameters
    ----------
    create_admin: bool
        If True and no users exist, create the seed administrator with
        environment-provided credentials (DARKNOVA_ADMIN_USER/DARKNOVA_ADMIN_PASS).
    """
    from darknova_core.services import FarmService

    settings = settings or load_settings()
    repos = repos or build_repositories(settings)
    if settings.storage == STORAGE_SQL and repos.engine is not None:
        from darknova_core.db import Base
        from darknova_core import models  # noqa: F401  (registers tables)

        Base.metadata.create_all(bind=repos.engine)
    if create_admin:
        FarmService(repos).ensure_seed_admin(settings.admin_user, settings.admin_pass)
    return repos


if __name__ == "__main__":  # pragma: no cover
    init_db()
