"""FastAPI application entry point for the Sonarium API.

This module initializes the FastAPI application with its routers and
lifecycle management. Before serving requests the lifespan creates missing
tables and marks scan jobs left in flight by a previous process as
INTERRUPTED; then it creates the scan job service shared by all requests.

The API includes endpoints for:
- System health and configuration
- Scan jobs (start, edit, history, progress)
- Library statistics of the latest scan
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sonarium.api.routers import library, scan, system
from sonarium.core.db import init_db
from sonarium.core.logger import setup_logging
from sonarium.worker.interruption import ScanJobInterruptionRunner
from sonarium.worker.scanner import ScanJobService

# Initialize Logging
setup_logging("sonarium-api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    # Startup
    await init_db()
    await ScanJobInterruptionRunner().run()
    app.state.scan_job_service = ScanJobService()

    yield
    # Shutdown
    await app.state.scan_job_service.shutdown()


app = FastAPI(
    title="Sonarium API",
    version="0.1.0",
    description="Music Library Server API",
    lifespan=lifespan,
)

# CORS - Allow Vite Frontend
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(system.router, prefix="/api/v1/system", tags=["System"])
app.include_router(library.router, prefix="/api/v1/library", tags=["Library"])
app.include_router(scan.router, prefix="/api/v1/scan-jobs", tags=["Scan Jobs"])


@app.get("/")
async def root():
    return {"message": "Sonarium API is running"}
