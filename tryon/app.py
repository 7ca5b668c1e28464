from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tryon.config import Settings, load_settings, logger
from tryon.core.providers import ProviderDispatcher
from tryon.core.rate_limit import InMemoryRateLimitStore, RateLimiter, RateLimitStore

from .routers import router
from .routers.tryon.utils import CORS_ALLOW_HEADERS


def create_app(
    settings: Optional[Settings] = None,
    dispatcher: Optional[ProviderDispatcher] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Configuration and provider selection are resolved here so that a bad
    environment stops the process before it serves any traffic.

    Raises:
        ConfigError: If the environment is missing required settings
        ProviderConfigError: If the selected provider is unknown or unusable
    """
    settings = settings or load_settings()
    dispatcher = dispatcher or ProviderDispatcher.from_settings(settings)
    store = rate_limit_store or InMemoryRateLimitStore(points=settings.daily_limit)

    app = FastAPI(
        title="Virtual Try-On API",
        description="Composites apparel photos onto a model photo through a pluggable vision provider",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.rate_limiter = RateLimiter(store)

    app.include_router(router)

    # Configure CORS: reflect any requesting origin
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_methods=["POST", "OPTIONS"],
        allow_headers=[CORS_ALLOW_HEADERS],
    )

    logger.info(
        "Virtual Try-On API initialized successfully",
        extra={"provider": settings.provider, "daily_limit": settings.daily_limit},
    )
    return app
