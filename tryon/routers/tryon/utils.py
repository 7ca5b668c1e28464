"""Utility helpers for the try-on router."""

from typing import Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from tryon.config import Settings
from tryon.core.rate_limit import UNKNOWN_CLIENT, RateLimitDecision

CORS_ALLOW_METHODS = "POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type"


def get_client_ip(request: Request) -> str:
    """Extract the requester IP from common proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


def cors_headers(request: Request, settings: Settings) -> Dict[str, str]:
    """Reflect the caller's origin, falling back to the configured public URL."""
    origin = request.headers.get("Origin") or settings.public_base_url
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }


def rate_limit_headers(decision: RateLimitDecision) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": decision.reset_at,
    }


def error_response(
    status_code: int,
    error: str,
    headers: Optional[Dict[str, str]] = None,
    details: Optional[List[Dict[str, str]]] = None,
    **extra,
) -> JSONResponse:
    content = {"error": error}
    if details is not None:
        content["details"] = details
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)
