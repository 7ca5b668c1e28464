"""Sends prepared try-on requests to the API and normalizes every failure mode."""

from typing import Any, Optional

import httpx

from tryon.config import logger
from tryon.core.errors import HttpStatusError, NetworkError, UnexpectedResponseError
from tryon.models import TryonRequest, TryonResult

from .cancellation import CancelSignal, run_cancellable

TRYON_API_ENDPOINT = "/api/tryon"
DEFAULT_TIMEOUT_SECONDS = 30.0


def _read_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class RequestSubmitter:
    """
    Posts a TryonRequest with a hard deadline.

    Failures surface as:
        RequestTimeoutError: the deadline passed and the call was cancelled
        RequestCancelledError: the caller's signal fired
        NetworkError: transport failure before a response arrived
        HttpStatusError: non-2xx response, with status and decoded body
        UnexpectedResponseError: 2xx response without `img_generated`
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            # the deadline is enforced by run_cancellable
            timeout=None,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RequestSubmitter":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _post(self, request: TryonRequest) -> TryonResult:
        try:
            response = await self._client.post(
                TRYON_API_ENDPOINT,
                json=request.model_dump(),
                headers={"Content-Type": "application/json"},
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"Network error calling try-on API: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            body = _read_body(response)
            logger.warning(
                "Try-on API returned an error status",
                extra={"status": response.status_code},
            )
            raise HttpStatusError(response.status_code, body, response.headers)

        data = _read_body(response)
        if not isinstance(data, dict) or not data.get("img_generated"):
            raise UnexpectedResponseError("Invalid API response: missing img_generated field")

        return TryonResult(imageData=data["img_generated"])

    async def submit(
        self,
        request: TryonRequest,
        signal: Optional[CancelSignal] = None,
    ) -> TryonResult:
        logger.info(
            "Submitting try-on request",
            extra={"apparel_count": len(request.apparelImages), "timeout": self.timeout},
        )
        return await run_cancellable(self._post(request), signal, timeout=self.timeout)
