from contextlib import asynccontextmanager
import logging

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from sqlmodel import Session

# Load environment variables as early as possible
load_dotenv()

from .config import settings
from .container import build_services
from .database import create_db_and_tables, engine
from .exceptions import http_exception_handler
from .infrastructure.scheduling import IntervalTrigger
from .routers import waitlist_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def sweep_expired_offers():
    """One reaper pass on a fresh session; runs on the scheduler thread."""
    with Session(engine) as session:
        return build_services(session).reaper.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting %s...", settings.APP_NAME)
    app.state.db_init_ok = True
    app.state.db_init_error = None
    try:
        create_db_and_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        # Do not crash the app; report via health endpoint
        app.state.db_init_ok = False
        app.state.db_init_error = str(e)
        logger.exception("Database initialization failed")

    trigger = None
    if settings.REAPER_ENABLED and app.state.db_init_ok:
        trigger = IntervalTrigger(settings.REAPER_INTERVAL_SECONDS)
        trigger.on_tick(sweep_expired_offers)
        trigger.start()
    app.state.reaper_trigger = trigger
    yield
    # Shutdown
    if trigger is not None:
        trigger.shutdown()
    logger.info("Shutting down %s...", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url=("/docs" if settings.DOCS_ENABLED else None),
    redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
    openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
)

# Add custom exception handler
app.add_exception_handler(HTTPException, http_exception_handler)

app.include_router(waitlist_router.router)


@app.get("/health")
def health():
    trigger = getattr(app.state, "reaper_trigger", None)
    return {
        "status": "ok" if getattr(app.state, "db_init_ok", True) else "degraded",
        "version": settings.APP_VERSION,
        "database_error": getattr(app.state, "db_init_error", None),
        "reaper_running": bool(trigger and trigger.running),
    }
