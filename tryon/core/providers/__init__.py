"""Vision provider registry and the dispatcher that fronts it."""

import time
from typing import Callable, Dict, Type

from tryon.config import Settings, logger
from tryon.core.errors import ProviderConfigError
from tryon.models import TryonRequest

from .base import VisionProvider

PROVIDERS: Dict[str, Type[VisionProvider]] = {}


def register_provider(name: str) -> Callable[[Type[VisionProvider]], Type[VisionProvider]]:
    """Class decorator adding a backend to the registry under `name`."""

    def decorator(cls: Type[VisionProvider]) -> Type[VisionProvider]:
        key = name.upper()
        cls.name = key
        PROVIDERS[key] = cls
        return cls

    return decorator


def build_provider(settings: Settings) -> VisionProvider:
    """
    Instantiate the configured provider.

    Raises:
        ProviderConfigError: If the provider is unknown or lacks credentials
    """
    provider_cls = PROVIDERS.get(settings.provider)
    if provider_cls is None:
        supported = ", ".join(sorted(PROVIDERS))
        raise ProviderConfigError(
            f"Unsupported vision provider: {settings.provider}. Supported providers: {supported}"
        )

    credentials = settings.credentials_for(settings.provider)
    if not credentials.key:
        raise ProviderConfigError(f"Missing API key for provider {settings.provider}")

    return provider_cls(credentials)


class ProviderDispatcher:
    """Routes validated requests to the single provider chosen at startup."""

    def __init__(self, provider: VisionProvider):
        self.provider = provider

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderDispatcher":
        provider = build_provider(settings)
        logger.info(
            "Vision provider selected",
            extra={"provider": provider.name, "model": provider.model},
        )
        return cls(provider)

    async def generate(self, request: TryonRequest) -> str:
        start = time.time()
        logger.info(
            "Dispatching try-on generation",
            extra={
                "provider": self.provider.name,
                "apparel_count": len(request.apparelImages),
            },
        )
        image_data = await self.provider.generate(request)
        logger.info(
            "Try-on generation complete",
            extra={
                "provider": self.provider.name,
                "elapsed_ms": int((time.time() - start) * 1000),
                "result_length": len(image_data),
            },
        )
        return image_data


# Register the built-in backends.
from . import gemini, openai_provider  # noqa: E402,F401

__all__ = [
    "PROVIDERS",
    "ProviderDispatcher",
    "VisionProvider",
    "build_provider",
    "register_provider",
]
