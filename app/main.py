"""
Resale Analytics
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager

from app.config import get_settings
from app.utils.logger import log
from app import __version__

# Import routers
from app.api import health, analytics

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from app.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the cache warm-up scheduler
    from app.scheduler import start_scheduler, stop_scheduler
    try:
        start_scheduler()
    except Exception as e:
        log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    try:
        stop_scheduler()
    except Exception as e:
        log.warning(f"Scheduler shutdown error: {str(e)}")
    await analytics.coordinator.wait_idle()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Analytics backend for a resale operation

    Turns purchases, shipment tracking and sales into:
    - Inventory KPIs: unsold units, locked capital, stock aging
    - Logistics timing and late-shipment rates per carrier and locker
    - Margin analysis, best and worst sales, days-to-sale quartiles
    - Product groups with price statistics and a suggested price band
    - Profit time series and period-over-period comparison with insights
    - Marketplace listing matching against known product groups
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Gzip compression (summary payloads are large JSON)
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(analytics.router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "status": "/status",
        "endpoints": {
            "summary": "GET /analytics/summary",
            "profit_series": "GET /analytics/profit",
            "profit_compare": "GET /analytics/profit/compare",
            "listing_match": "GET /analytics/listing-match",
            "cache_clear": "POST /analytics/cache/clear"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1
    )
