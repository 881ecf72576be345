"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from officehours.api import events, holidays, hosts, scheduling
from officehours.core.config import settings
from officehours.core.database import close_db, init_db
from officehours.services.scheduler import busy_sync_scheduler

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Office Hours Scheduler")
    logger.info(f"Debug mode: {settings.DEBUG}")

    await init_db()

    if settings.SYNC_ENABLED:
        await busy_sync_scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down Office Hours Scheduler")
    await busy_sync_scheduler.stop()
    await close_db()


# Create FastAPI app
app = FastAPI(
    title="Office Hours Scheduler",
    description="Bookable time slots across hosts with calendar-aware availability and round-robin assignment",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(hosts.router)
app.include_router(events.router)
app.include_router(scheduling.router)
app.include_router(holidays.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "scheduler_running": busy_sync_scheduler.running,
    }
