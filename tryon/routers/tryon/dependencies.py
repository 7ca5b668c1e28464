"""FastAPI dependencies shared across try-on endpoints."""

from fastapi import Request

from tryon.config import Settings
from tryon.core.providers import ProviderDispatcher
from tryon.core.rate_limit import RateLimiter


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_dispatcher(request: Request) -> ProviderDispatcher:
    return request.app.state.dispatcher
