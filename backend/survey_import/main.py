"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from sqlalchemy import text

from survey_import.config import get_settings
from survey_import.db.session import SessionLocal
from survey_import.routers import imports
from survey_import.services.coordinator import get_coordinator

logger = logging.getLogger(__name__)


def _warm_backend_state() -> None:
    """Prime the DB connection and the vocabulary cache at process start."""

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            get_coordinator().vocabulary.warmup(db)
    except Exception:
        logger.exception("Backend warm-up failed; continuing without startup pre-warm.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    _warm_backend_state()
    yield


app = FastAPI(title=get_settings().app_name, version="0.1.0", lifespan=lifespan)

app.include_router(imports.router, tags=["imports"])


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}
