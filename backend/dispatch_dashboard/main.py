"""Dispatch Dashboard API"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from dispatch_dashboard.core.config import get_settings
from dispatch_dashboard.core.logging import configure_logging, logger
from dispatch_dashboard.routers import dashboard, dispatch, drivers, problems, trucks

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    logger.info(
        "Dispatch Dashboard API starting",
        version=VERSION,
        app_mode=settings.normalized_app_mode(),
        db_path=settings.dispatch_db_path,
        timezone=str(settings.resolved_timezone()),
    )
    yield
    logger.info("Dispatch Dashboard API shutting down")


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Loads, drivers and trucks for a small trucking dispatch office",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(dispatch.router)
app.include_router(drivers.router)
app.include_router(trucks.router)
app.include_router(dashboard.router)
app.include_router(problems.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": VERSION,
        "description": "Dispatch dashboard for loads, drivers and trucks",
        "endpoints": {
            "dispatch": "/dispatch",
            "drivers": "/drivers",
            "trucks": "/trucks",
            "dashboard": "/dashboard",
            "problems": "/problems",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
