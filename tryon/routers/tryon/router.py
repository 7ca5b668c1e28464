"""FastAPI router for virtual try-on endpoints."""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from tryon.config import Settings, logger
from tryon.core.errors import RateLimitExceeded, TryonValidationError
from tryon.core.providers import ProviderDispatcher
from tryon.core.rate_limit import RateLimiter
from tryon.core.validation import validate_tryon_payload
from tryon.models import OnSuccessTryonResponse

from .dependencies import get_dispatcher, get_rate_limiter, get_settings
from .models import ErrorResponse, RateLimitResponse, ValidationErrorResponse
from .utils import cors_headers, error_response, get_client_ip, rate_limit_headers

router = APIRouter(prefix="/api", tags=["Virtual Try-On"])


@router.options("/tryon")
async def tryon_preflight(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Response:
    """Answer preflight requests without touching quota or providers."""

    return Response(status_code=200, headers=cors_headers(request, settings))


@router.post(
    "/tryon",
    response_model=OnSuccessTryonResponse,
    responses={
        400: {"model": ValidationErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def create_virtual_tryon(
    request: Request,
    settings: Settings = Depends(get_settings),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
) -> JSONResponse:
    """Rate-limit, validate and dispatch a try-on request."""

    headers = cors_headers(request, settings)
    client_ip = get_client_ip(request)

    # Quota is consumed before the body is even parsed
    try:
        decision = rate_limiter.check(client_ip)
    except RateLimitExceeded as exc:
        logger.warning(
            "Rate limit exceeded",
            extra={"client_ip": client_ip, "limit": exc.limit, "reset_at": exc.reset_at},
        )
        status = rate_limiter.status(client_ip)
        return error_response(
            429,
            "Rate limit exceeded",
            headers={**headers, **rate_limit_headers(status)},
            limit=exc.limit,
            remaining=0,
            reset_at=exc.reset_at,
        )

    headers["X-RateLimit-Remaining"] = str(decision.remaining)

    try:
        payload = await request.json()
    except ValueError:
        logger.info("Try-on request body is not valid JSON", extra={"client_ip": client_ip})
        return error_response(
            400,
            "Validation failed",
            headers,
            details=[{"field": "body", "message": "Request body must be valid JSON"}],
        )

    try:
        tryon_request = validate_tryon_payload(payload)
    except TryonValidationError as exc:
        return error_response(400, "Validation failed", headers, details=exc.details)

    try:
        img_generated = await dispatcher.generate(tryon_request)
    except Exception as exc:
        logger.error("Try-on API error", exc_info=True)
        message = str(exc) if settings.is_development else "Internal Server Error"
        return error_response(500, message, headers)

    return JSONResponse(
        status_code=200,
        content={"img_generated": img_generated},
        headers=headers,
    )


@router.get("/ratelimit", response_model=RateLimitResponse)
async def check_rate_limit_status(
    request: Request,
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> RateLimitResponse:
    """Report the remaining requests for the caller's IP."""

    client_ip = get_client_ip(request)
    status = rate_limiter.status(client_ip)

    logger.info(
        "Rate limit status check",
        extra={"client_ip": client_ip, "remaining": status.remaining},
    )

    return RateLimitResponse(
        allowed=status.allowed,
        remaining=status.remaining,
        reset_at=status.reset_at,
        limit=status.limit,
        message=f"You have {status.remaining} tries left",
    )


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)) -> dict:
    """Simple health check endpoint."""

    return {
        "status": "healthy",
        "service": "virtual-try-on-api",
        "provider": settings.provider,
    }
