from typing import Any, Dict, List, Optional

import httpx

from tryon.config import logger
from tryon.core.errors import ProviderError
from tryon.core.image_ops import detect_mime_type, normalize_base64
from tryon.core.prompt_templates import build_tryon_prompt
from tryon.models import TryonRequest

from . import register_provider
from .base import VisionProvider

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
GEMINI_TIMEOUT_SECONDS = 120.0


@register_provider("GOOGLE")
class GeminiProvider(VisionProvider):
    """Google Gemini image generation via the REST generateContent endpoint."""

    def __init__(self, credentials, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(credentials)
        self._transport = transport

    def _build_payload(self, request: TryonRequest) -> Dict[str, Any]:
        # Order: text prompt, model image, then apparel images
        content_parts: List[Dict[str, Any]] = [
            {"text": build_tryon_prompt(len(request.apparelImages))}
        ]
        for image in [request.modelImage, *request.apparelImages]:
            content_parts.append(
                {
                    "inline_data": {
                        "mime_type": detect_mime_type(image),
                        "data": normalize_base64(image),
                    }
                }
            )

        return {
            "contents": [{"role": "user", "parts": content_parts}],
            "generationConfig": {"temperature": 0.1},
        }

    async def _generate(self, request: TryonRequest) -> str:
        url = f"{GEMINI_BASE_URL}/{self.model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self._api_key or ""}

        try:
            async with httpx.AsyncClient(
                timeout=GEMINI_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.post(
                    url, json=self._build_payload(request), headers=headers
                )
                response.raise_for_status()
                api_result = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Gemini API HTTP error: {e.response.status_code} - {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(f"Network error calling Gemini API: {e}") from e
        except ValueError as e:
            raise ProviderError("Gemini API returned a non-JSON response") from e

        return _extract_image(api_result)


def _extract_image(api_result: Dict[str, Any]) -> str:
    if not api_result.get("candidates"):
        raise ProviderError("No candidates returned from Google Gemini API")

    candidate = api_result["candidates"][0]
    if "content" not in candidate or "parts" not in candidate["content"]:
        raise ProviderError("No content parts returned from Google Gemini API")

    for part in candidate["content"]["parts"]:
        # Check both camelCase and snake_case formats
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            return inline["data"]
        if "text" in part:
            logger.debug(f"Gemini returned text part: {part['text'][:200]}")

    raise ProviderError("No image data found in Google Gemini API response")
