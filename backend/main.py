import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.config import (
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGINS,
    PRELOAD_MODELS,
)
from backend.logging_setup import configure_logging
from backend.routers import attendance, core, employees, kiosk, reports
from backend.services.model_state import start_model_load
from database.db import create_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    create_tables()
    logger.info("Database ready")

    if PRELOAD_MODELS:
        start_model_load()

    yield

    await kiosk.shutdown_scanner()
    logger.info("Shutting down")


app = FastAPI(title="Clockface API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)

app.include_router(core.router)
app.include_router(employees.router)
app.include_router(attendance.router)
app.include_router(reports.router)
app.include_router(kiosk.router)
