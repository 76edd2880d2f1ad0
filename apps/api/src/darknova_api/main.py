from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging
import asyncio
import time
from contextlib import asynccontextmanager
from typing import Optional
from darknova_core import __version__
from darknova_core.auth import SessionProvider
from darknova_core.config import Settings, load_settings
from darknova_core.errors import (
    ConflictError,
    DarknovaError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from darknova_core.events import ChangeFeed
from darknova_core.init_db import init_db
from darknova_core.logging_config import configure_logging
from darknova_core.repositories import build_repositories
from darknova_core.services import FarmService
from .routes import absences, catalog, changes, dashboard, orders, users

logger = logging.getLogger("darknova_api")

ERROR_STATUS = {
    ValidationError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    ConflictError: 409,
}


def _status_for(exc: DarknovaError) -> int:
    for cls, code in ERROR_STATUS.items():
        if isinstance(exc, cls):
            return code
    return 400


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    repos = build_repositories(settings)
    feed = ChangeFeed()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.validate()
        init_db(create_admin=True, settings=settings, repos=repos)
        changes.set_main_loop(asyncio.get_running_loop())
        unsubscribe = feed.subscribe(changes.change_listener)
        logger.info("api.start version=%s storage=%s", app.version, settings.storage)
        try:
            yield
        finally:
            unsubscribe()
            logger.info("api.stop")

    app = FastAPI(title="Darknova API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.repos = repos
    app.state.service = FarmService(repos, feed=feed)
    app.state.sessions = SessionProvider(repos.users, track_current=False)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Lightweight request log middleware (skips health probes)
    @app.middleware("http")
    async def request_logger(request, call_next):  # type: ignore
        start = time.time()
        path = request.url.path
        if path.startswith("/health") or path.startswith("/api/health"):
            return await call_next(request)
        response = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)
        logger.info("http %s %s -> %s (%dms)", request.method, path, response.status_code, duration_ms)
        return response

    @app.exception_handler(DarknovaError)
    async def domain_error_handler(request: Request, exc: DarknovaError):
        code = _status_for(exc)
        logger.warning("http %s %s rejected %s: %s", request.method, request.url.path, type(exc).__name__, exc)
        return JSONResponse(status_code=code, content={"detail": str(exc)})

    api_router = APIRouter(prefix="/api")
    api_router.include_router(users.router)
    api_router.include_router(orders.router)
    api_router.include_router(absences.router)
    api_router.include_router(catalog.router)
    api_router.include_router(dashboard.router)
    api_router.include_router(changes.router)
    app.include_router(api_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/health")
    async def api_health():
        return {
            "backend": "ok",
            "storage": settings.storage,
            "version": app.version,
        }

    return app


configure_logging()
app = create_app()

__all__ = ["app", "create_app"]
