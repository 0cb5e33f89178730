import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from probewatch.config import get_settings
from probewatch.database import engine, Base
from probewatch.routers import health_checks, uptime_history

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables on startup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Start the tick and daily uptime jobs (skip in test mode)
    if not getattr(app.state, "_testing", False):
        from probewatch.scheduler import start_scheduler
        await start_scheduler()

    yield

    # Shutdown: stop ticking, let in-flight probes finish
    if not getattr(app.state, "_testing", False):
        from probewatch.scheduler import stop_scheduler
        await stop_scheduler()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health_checks.router)
app.include_router(uptime_history.router)


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
    }
