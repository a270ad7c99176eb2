"""condofin FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from condofin.api import ledger, reports
from condofin.models import Base
from condofin.services import engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle (startup and shutdown)."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="condofin",
    description="Condominium fee resolution, month allocation and debt reporting",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(reports.router)
app.include_router(ledger.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
