"""Structural validation for incoming try-on payloads."""

from typing import Any, Dict, List

from tryon.config import logger
from tryon.core.errors import TryonValidationError
from tryon.models import TryonRequest

MISSING_MODEL_IMAGE = "Missing model image"
MISSING_APPAREL_IMAGES = "At least one apparel image required"
INVALID_APPAREL_IMAGE = "Apparel image must be a non-empty string"
INVALID_BODY = "Request body must be a JSON object"


def _is_filled(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def collect_validation_errors(payload: Any) -> List[Dict[str, str]]:
    """Return one {field, message} entry per offending field (empty when valid)."""
    if not isinstance(payload, dict):
        return [{"field": "body", "message": INVALID_BODY}]

    errors: List[Dict[str, str]] = []

    if not _is_filled(payload.get("modelImage")):
        errors.append({"field": "modelImage", "message": MISSING_MODEL_IMAGE})

    apparel = payload.get("apparelImages")
    if not isinstance(apparel, list) or len(apparel) == 0:
        errors.append({"field": "apparelImages", "message": MISSING_APPAREL_IMAGES})
    else:
        for index, item in enumerate(apparel):
            if not _is_filled(item):
                errors.append(
                    {"field": f"apparelImages.{index}", "message": INVALID_APPAREL_IMAGE}
                )

    return errors


def validate_tryon_payload(payload: Any) -> TryonRequest:
    """
    Validate a decoded JSON body and build the TryonRequest.

    Image fields only need to be non-empty strings; payload encoding is left
    to the provider.

    Raises:
        TryonValidationError: listing every offending field
    """
    errors = collect_validation_errors(payload)
    if errors:
        logger.info("Try-on payload rejected", extra={"fields": [e["field"] for e in errors]})
        raise TryonValidationError(errors)

    return TryonRequest(
        modelImage=payload["modelImage"],
        apparelImages=list(payload["apparelImages"]),
    )
