"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine.Engine").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("picows").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

# Try to use uvloop for better performance (Unix only)
try:
    import uvloop
    uvloop.install()
    _UVLOOP_ENABLED = True
except ImportError:
    _UVLOOP_ENABLED = False

from burnwatch import __version__
from burnwatch.api import router, manager, websocket_endpoint
from burnwatch.clients import NoNodesAvailableError
from burnwatch.config import get_settings
from burnwatch.services import LedgerMonitor
from burnwatch.storage import init_database, get_database, cache

logger = logging.getLogger(__name__)

# Global services
monitor: LedgerMonitor | None = None
_stats_broadcast_task: asyncio.Task | None = None


async def _periodic_stats_broadcast(interval: float):
    """Background task pushing the performance summary to WebSocket clients."""
    while True:
        try:
            await asyncio.sleep(interval)
            if monitor and manager.connection_count:
                await manager.send_stats(await monitor.get_performance_stats())
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning(f"Stats broadcast error: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global monitor, _stats_broadcast_task

    logger.info("Starting FirstLedger burn detector...")
    logger.info(f"Event loop: {'uvloop' if _UVLOOP_ENABLED else 'asyncio'}")

    settings = get_settings()

    # Track initialization state for proper cleanup on failure
    db_initialized = False
    cache_initialized = False

    try:
        # Initialize database with timeout
        try:
            await asyncio.wait_for(init_database(), timeout=30)
            db_initialized = True
            logger.info("Database initialized")
        except asyncio.TimeoutError:
            raise RuntimeError("Database initialization timed out after 30s")

        # Initialize Redis cache with timeout
        try:
            await asyncio.wait_for(cache.init_cache(), timeout=10)
            cache_initialized = True
            if cache.is_cache_available():
                logger.info("Redis cache initialized")
            else:
                logger.warning("Redis cache unavailable - running without token snapshots")
        except asyncio.TimeoutError:
            logger.warning("Redis cache initialization timed out - running without token snapshots")
            cache_initialized = True  # Mark as initialized to skip cleanup

        monitor = LedgerMonitor(settings)
        monitor.on_token(manager.send_token)

        try:
            await monitor.start()
        except NoNodesAvailableError:
            logger.error("No nodes connected after retries, exiting...")
            raise

        # Expose monitor to API routes via app.state
        app.state.monitor = monitor

        _stats_broadcast_task = asyncio.create_task(
            _periodic_stats_broadcast(settings.stats_interval)
        )
        logger.info(f"Monitoring {len(monitor.pool.nodes)} node(s)")

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        # Cleanup on startup failure
        if monitor:
            try:
                await monitor.stop()
            except Exception as cleanup_err:
                logger.warning(f"Error stopping monitor: {cleanup_err}")
            monitor = None
        if cache_initialized:
            try:
                await cache.close_cache()
            except Exception as cleanup_err:
                logger.warning(f"Error closing cache: {cleanup_err}")
        if db_initialized:
            try:
                db = get_database()
                await db.close()
            except Exception as cleanup_err:
                logger.warning(f"Error closing database: {cleanup_err}")
        raise  # Re-raise so the server exits non-zero

    yield

    # Shutdown
    logger.info("Shutting down...")
    app.state.monitor = None

    if _stats_broadcast_task:
        _stats_broadcast_task.cancel()
        try:
            await _stats_broadcast_task
        except asyncio.CancelledError:
            pass

    # Stops streams and enrichment, flushes queued writes
    if monitor:
        await monitor.stop()

    await cache.close_cache()

    try:
        db = get_database()
        await db.close()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title="FirstLedger Burn Detector",
    description="XRPL token launch detection via FirstLedger burn payments",
    version=__version__,
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST routes
app.include_router(router, prefix="/api")

# WebSocket endpoint
app.websocket("/ws")(websocket_endpoint)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "FirstLedger Burn Detector",
        "version": __version__,
        "docs": "/docs",
        "event_loop": "uvloop" if _UVLOOP_ENABLED else "asyncio",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "burnwatch.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
