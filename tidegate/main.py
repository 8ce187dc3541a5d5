"""TideGate API application."""

import logging
import re
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import __version__
from .api import (
    audit_logs_router,
    auth_router,
    grants_router,
    permissions_router,
    roles_router,
    scopes_router,
    sessions_router,
)
from .core.config import settings, ConfigurationError, Environment
from .core.logging_config import setup_logging
from .core.seeder import seed_all
from .database import engine, get_db, init_db, SessionLocal, DATABASE_URL
from .exceptions import TideGateException
from .middleware.exception_handler import tidegate_exception_handler
from .middleware.request_context import RequestContextMiddleware
from .worker import run_once

setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = logging.getLogger(__name__)

_started_at = time.monotonic()


def _safe_url(url: str) -> str:
    """``postgresql://app:s3cret@db/tg`` -> ``postgresql://app:***@db/tg``"""
    return re.sub(r"://([^:/@]+):[^@]*@", r"://\1:***@", url)


def _check_security_settings() -> None:
    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical(f"STARTUP BLOCKED: {e}")
        raise SystemExit(1) from e
    if settings.environment == Environment.DEVELOPMENT:
        for problem in settings.insecure_settings():
            logger.warning(f"SECURITY (development only): {problem}")


def _prepare_database() -> None:
    """Fail fast when storage is unreachable, then create tables and seed."""
    url = _safe_url(DATABASE_URL)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.critical(f"Cannot reach the database at {url}: {e}")
        raise SystemExit(1) from e
    logger.info(f"Database ready: {url}")

    init_db()
    db = SessionLocal()
    try:
        seed_all(db)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"TideGate {__version__} starting ({settings.environment.value})")
    _check_security_settings()
    _prepare_database()
    # One maintenance pass now; the worker process handles the rest.
    run_once()
    yield
    logger.info("TideGate shutting down")


app = FastAPI(
    title="TideGate API",
    description=(
        "Authorization core for a Kubernetes management console: roles, "
        "scope-hierarchical grants (global, cluster, namespace), opaque session "
        "tokens and an append-only audit trail.\n\n"
        "**Authentication:** send the access token as `Authorization: Bearer <token>`, "
        "the `token` query parameter or the `token` cookie."
    ),
    version=__version__,
    lifespan=lifespan,
)

# Added last runs first: CORS wraps the request context.
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)
app.add_exception_handler(TideGateException, tidegate_exception_handler)

for router in (
    auth_router,
    roles_router,
    permissions_router,
    grants_router,
    scopes_router,
    audit_logs_router,
    sessions_router,
):
    app.include_router(router)


@app.get("/")
def root():
    return {"name": "TideGate API", "version": __version__, "status": "running"}


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Liveness plus a storage check.

    Always 200 so load balancers can tell "up but degraded" from "down";
    ``status`` is ``degraded`` when the query fails.
    """
    try:
        permission_count = db.execute(text("SELECT COUNT(*) FROM permissions")).scalar() or 0
        db_status = "ok"
    except SQLAlchemyError:
        db.rollback()
        permission_count = 0
        db_status = "error"

    return {
        "status": "healthy" if db_status == "ok" else "degraded",
        "db": db_status,
        "uptime_seconds": round(time.monotonic() - _started_at),
        "version": __version__,
        "permission_count": permission_count,
    }
