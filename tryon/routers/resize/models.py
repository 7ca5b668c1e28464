"""Pydantic models used by the resize router."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ResizeRequest(BaseModel):
    imageB64: str = Field(..., description="Raw base64 or data URI of the source image")
    options: Optional[Dict[str, Any]] = Field(
        None,
        description="width, height, fit, quality, format, withoutEnlargement",
    )


class ResizeResponse(BaseModel):
    success: bool
    message: str
    resizedB64: str
    metadata: Dict[str, Dict[str, Any]]
    resizeInfo: Dict[str, Any]
