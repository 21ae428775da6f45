"""
IPTV Catalog Addon - FastAPI Backend

Serves a live TV catalog built from iptv-org data and custom channel overlays.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from iptv_addon.config import get_settings
from iptv_addon.routers import addon, admin
from iptv_addon.state import AddonState, build_state

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(state: Optional[AddonState] = None) -> FastAPI:
    """Create the FastAPI application around an AddonState."""
    state = state or build_state()
    settings = state.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown events."""
        logger.info("Starting IPTV Catalog Addon...")
        await state.startup()
        logger.info(
            f"Custom channels: {'Enabled' if settings.enable_custom_channels else 'Disabled'}, "
            f"verification: {settings.verify_mode}"
        )

        yield

        logger.info("Shutting down IPTV Catalog Addon...")
        await state.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Live TV catalog addon built on iptv-org data",
        lifespan=lifespan
    )
    app.state.addon = state

    # Rate limiter
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(addon.router)
    app.include_router(admin.router)

    # Error handlers
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "iptv_addon.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
