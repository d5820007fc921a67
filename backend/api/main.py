"""
Stockroom API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.errors import StockroomError

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Stockroom API starting up", version=settings.app_version, env=settings.app_env)
    yield
    logger.info("Stockroom API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Multi-tenant stock management for paint and coatings distributors",
    lifespan=lifespan,
)


@app.exception_handler(StockroomError)
async def stockroom_error_handler(request: Request, exc: StockroomError):
    if exc.status_code >= 500:
        logger.error("api.error", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import (
    categories,
    dashboard,
    movements,
    onboarding,
    organizations,
    products,
    technicians,
)

app.include_router(organizations.router)
app.include_router(categories.router)
app.include_router(products.router)
app.include_router(movements.router)
app.include_router(technicians.router)
app.include_router(dashboard.router)
app.include_router(onboarding.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
