"""Storage ports and adapter selection."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from darknova_core.config import STORAGE_LOCAL, STORAGE_SQL, ConfigError, Settings
from darknova_core.repositories.base import AbsenceRepository, OrderRepository, UserRepository

if TYPE_CHECKING:
    from darknova_core.repositories.local import LocalStore

logger = logging.getLogger("darknova_core.repositories")


@dataclass
class Repositories:
    users: UserRepository
    orders: OrderRepository
    absences: AbsenceRepository
    # local adapter only; also holds the persisted session slot
    store: Optional["LocalStore"] = None
    # sql adapter only
    engine: Optional[Any] = None


def build_repositories(settings: Settings) -> Repositories:
    """Select the storage adapter named by ``settings.storage``."""
    if settings.storage == STORAGE_LOCAL:
        from darknova_core.repositories.local import (
            LocalAbsenceRepository,
            LocalOrderRepository,
            LocalStore,
            LocalUserRepository,
        )

        store = LocalStore(settings.effective_state_file())
        logger.info("storage.local path=%s", store.path)
        return Repositories(
            users=LocalUserRepository(store),
            orders=LocalOrderRepository(store),
            absences=LocalAbsenceRepository(store),
            store=store,
        )
    if settings.storage == STORAGE_SQL:
        from sqlalchemy.orm import sessionmaker
        from darknova_core import db
        from darknova_core.repositories.sql import (
            SqlAbsenceRepository,
            SqlOrderRepository,
            SqlUserRepository,
        )

        if settings.db_url and settings.db_url != db.DATABASE_URL:
            engine = db.make_engine(settings.db_url)
            session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        else:
            engine = db.engine
            session_factory = db.SessionLocal
        logger.info("storage.sql url=%s", engine.url.render_as_string(hide_password=True))
        return Repositories(
            users=SqlUserRepository(session_factory),
            orders=SqlOrderRepository(session_factory),
            absences=SqlAbsenceRepository(session_factory),
            engine=engine,
        )
    raise ConfigError(f"unknown storage adapter: {settings.storage!r}")


__all__ = [
    "Repositories",
    "build_repositories",
    "UserRepository",
    "OrderRepository",
    "AbsenceRepository",
]
