"""Common interface shared by every vision provider backend."""

from __future__ import annotations

import abc

from tryon.config import ProviderCredentials
from tryon.core.image_ops import normalize_base64
from tryon.models import TryonRequest

MOCK_MODEL = "mock"


class VisionProvider(abc.ABC):
    """A backend able to composite apparel onto a model image."""

    name: str = ""

    def __init__(self, credentials: ProviderCredentials):
        self.model = credentials.model
        self._api_key = credentials.key

    @property
    def is_mock(self) -> bool:
        return self.model == MOCK_MODEL

    async def generate(self, request: TryonRequest) -> str:
        """Return the generated image as raw base64."""
        if self.is_mock:
            return normalize_base64(request.modelImage)
        return await self._generate(request)

    @abc.abstractmethod
    async def _generate(self, request: TryonRequest) -> str:
        ...
