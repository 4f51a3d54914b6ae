"""
Drone Flight Logbook - FastAPI Backend

Main application entry point and configuration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dronelog import config
from dronelog.api.flights import overview_router, router as flights_router
from dronelog.services.flight_service import get_service


# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Drone Flight Logbook Backend")

    service = get_service()
    logger.info(
        f"Flight store at {service.store.db_path} "
        f"({service.count_flights().value} flights)"
    )

    yield

    logger.info("Shutting down Drone Flight Logbook Backend")


app = FastAPI(
    title="Drone Flight Logbook",
    description="""
    Backend API for drone flight log ingestion and review.

    ## Features
    - Import binary flight records and flight-planning app CSV exports
    - Normalize units, timestamps and altitude reference
    - Persist flights with their full sample history
    - Serve shape-preserving downsampled tracks for map display

    ## Data Flow
    1. Import a log via POST /flights/import
    2. List flights via GET /flights
    3. Get a track via GET /flights/{id}/data?maxPoints=5000
    4. Get totals via GET /overview
    """,
    version="0.1.0",
    lifespan=lifespan,
)


# CORS middleware (allow all origins for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(flights_router)
app.include_router(overview_router)


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "name": "Drone Flight Logbook",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    service = get_service()
    count = service.count_flights()

    return {
        "status": "healthy" if count.success else "degraded",
        "databasePath": str(service.store.db_path),
        "flightCount": count.value,
    }
