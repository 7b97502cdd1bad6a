"""FastAPI application wiring for the user service."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import install_error_handlers, router as v1_router
from .config import get_settings
from .domain.service import AccountService
from .logging_config import configure_logging
from .repository import AccountRepository, ProfileRepository
from .security.passwords import BcryptPasswordHasher

settings = get_settings()
configure_logging(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    app.state.account_service = AccountService(
        AccountRepository(pool),
        ProfileRepository(pool),
        BcryptPasswordHasher(rounds=settings.bcrypt_rounds),
        legacy_error_kinds=settings.legacy_error_kinds,
        compensate_orphaned_accounts=settings.compensate_orphaned_accounts,
    )
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
install_error_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
