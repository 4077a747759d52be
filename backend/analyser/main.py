"""
Auto Stock Analyser Backend - FastAPI Application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from analyser.api.routes import progress, stocks
from analyser.config import settings
from analyser.logger import logger
from analyser.managers import get_refresh_manager
from analyser.models import close_db, init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for startup and shutdown
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    await init_db()
    manager = get_refresh_manager()
    loaded = await manager.startup()
    logger.success(f"Application startup complete ({loaded} cached analyses)")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await manager.shutdown()
    await close_db()
    logger.success("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Stock technical analysis with a rate-limited refresh pipeline",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# CORS middleware for the dashboard dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(progress.router)
app.include_router(stocks.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server at {settings.API.host}:{settings.API.port}")

    uvicorn.run(
        "analyser.main:app",
        host=settings.API.host,
        port=settings.API.port,
        reload=settings.DEBUG,
        log_level=settings.LOGGER.default_level.lower()
    )
