from __future__ import annotations

import base64
import binascii
from typing import List, Optional, Tuple

from openai import AsyncOpenAI, OpenAIError

from tryon.config import logger
from tryon.core.errors import ProviderError
from tryon.core.image_ops import detect_mime_type, normalize_base64
from tryon.core.prompt_templates import build_tryon_prompt
from tryon.models import TryonRequest

from . import register_provider
from .base import VisionProvider

OPENAI_IMAGE_SIZE = "1024x1536"


def _to_upload(image: str, filename: str) -> Tuple[str, bytes, str]:
    try:
        data = base64.b64decode(normalize_base64(image), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ProviderError(f"{filename} is not valid base64 image data") from exc
    return filename, data, detect_mime_type(image)


@register_provider("OPENAI")
class OpenAIProvider(VisionProvider):
    """OpenAI Images Edit backed try-on generation."""

    def __init__(self, credentials, client: Optional[AsyncOpenAI] = None):
        super().__init__(credentials)
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def _generate(self, request: TryonRequest) -> str:
        # Images Edit composites the base image with a single outfit reference
        if len(request.apparelImages) > 1:
            logger.debug(
                "OpenAI provider uses the first apparel image only",
                extra={"apparel_count": len(request.apparelImages)},
            )
        images: List[Tuple[str, bytes, str]] = [
            _to_upload(request.modelImage, "model.png"),
            _to_upload(request.apparelImages[0], "apparel.png"),
        ]

        try:
            response = await self.client.images.edit(
                model=self.model,
                image=images,
                prompt=build_tryon_prompt(1),
                input_fidelity="high",
                size=OPENAI_IMAGE_SIZE,
                quality="high",
            )
        except OpenAIError as e:
            raise ProviderError(f"OpenAI Images API error: {e}") from e

        if not response.data:
            raise ProviderError("No response data received from OpenAI API")

        b64_json = response.data[0].b64_json
        if not b64_json:
            raise ProviderError("No image data received from OpenAI API")
        return b64_json
