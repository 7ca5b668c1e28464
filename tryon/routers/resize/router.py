"""FastAPI router for server-side image resizing."""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from tryon.config import Settings, logger
from tryon.core.image_ops import ImageResizeError, ResizeOptions, resize_image

from ..tryon.dependencies import get_settings
from .models import ResizeRequest, ResizeResponse

router = APIRouter(prefix="/api", tags=["Image Resize"])


@router.post("/resize", response_model=ResizeResponse)
async def resize(
    payload: ResizeRequest,
    settings: Settings = Depends(get_settings),
):
    """Resize a base64 image with the supplied options."""

    if payload.options is None:
        return JSONResponse(status_code=400, content={"error": "Options must be provided"})

    try:
        options = ResizeOptions.from_request(payload.options)
        result = await run_in_threadpool(resize_image, payload.imageB64, options)
    except ImageResizeError as exc:
        logger.warning("Image resizing failed", extra={"error": str(exc)})
        return JSONResponse(
            status_code=500,
            content={"error": "Image resizing failed", "details": str(exc)},
        )
    except Exception as exc:
        logger.error("Image resizing error", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error during image resizing",
                "details": str(exc) if settings.is_development else None,
            },
        )

    return ResizeResponse(
        success=True,
        message="Image resized successfully",
        **result.to_dict(),
    )
