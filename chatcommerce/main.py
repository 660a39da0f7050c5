import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from chatcommerce.core.config import AUTO_APPLY_MIGRATIONS, DATABASE_URL, ENV
from chatcommerce.core.database import Base, engine
from chatcommerce.core.logging_setup import configure_logging
from chatcommerce.core.startup_checks import (
    apply_migrations,
    ensure_migrations_applied,
    validate_database_environment,
)
from chatcommerce.middleware.observability import ObservabilityMiddleware
from chatcommerce.deps import get_session_factory, get_whatsapp_service
import chatcommerce.models  # models must be registered before create_all
from chatcommerce.services import event_handlers  # subscribes event bus handlers

from chatcommerce.routers.internal_metrics import router as internal_metrics_router
from chatcommerce.routers.orders import router as orders_router
from chatcommerce.routers.webhook import router as webhook_router

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        apply_migrations(alembic_config_path=ALEMBIC_CONFIG_PATH, enabled=AUTO_APPLY_MIGRATIONS)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        logger.info("%s ready env=%s", STARTUP_PREFIX, ENV)
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise


def _bind_event_handlers(application: FastAPI) -> None:
    """Point event handlers at the same session factory and gateway the routes resolve."""
    overrides = application.dependency_overrides
    event_handlers.session_factory = overrides.get(get_session_factory, get_session_factory)()
    event_handlers.outbound = overrides.get(get_whatsapp_service, get_whatsapp_service)()


@asynccontextmanager
async def lifespan(application: FastAPI):
    _startup_tasks()
    previous = (event_handlers.session_factory, event_handlers.outbound)
    _bind_event_handlers(application)
    try:
        yield
    finally:
        event_handlers.session_factory, event_handlers.outbound = previous


app = FastAPI(
    title="Conversational Commerce API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(ObservabilityMiddleware)

app.include_router(webhook_router)
app.include_router(orders_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}
