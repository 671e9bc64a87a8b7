"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from dispatch.config import get_settings
from dispatch.context import close_context, get_context
from dispatch.utils.logging import get_logger, setup_logging

# Setup logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    logger.info("application_starting")

    ctx = await get_context()
    logger.info("dispatch_context_initialized", source=ctx.load_source)

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await close_context()


# Create FastAPI app
app = FastAPI(
    title="Courier Dispatch",
    description="Order lifecycle, live-location sessions and durable state for courier dispatch",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": "courier-dispatch"}


# Import and include routers
from dispatch.api.routes import router

app.include_router(router, prefix="/api/v1", tags=["api"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dispatch.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )
