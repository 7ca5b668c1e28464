import asyncio

import httpx
import pytest

from tryon.client.cancellation import CancelSignal
from tryon.client.submitter import RequestSubmitter
from tryon.core.errors import (
    ErrorCategory,
    HttpStatusError,
    NetworkError,
    RequestCancelledError,
    RequestTimeoutError,
    UnexpectedResponseError,
    classify_error,
)
from tryon.models import TryonRequest

REQUEST = TryonRequest(modelImage="bW9kZWw=", apparelImages=["YXBwYXJlbA=="])


def submit(handler, timeout=5.0, signal_after=None):
    async def scenario():
        submitter = RequestSubmitter(
            base_url="http://testserver",
            timeout=timeout,
            transport=httpx.MockTransport(handler),
        )
        signal = CancelSignal()
        if signal_after is not None:
            asyncio.get_running_loop().call_later(signal_after, signal.cancel, "retake")
        async with submitter:
            return await submitter.submit(REQUEST, signal)

    return asyncio.run(scenario())


async def slow_handler(request):
    await asyncio.sleep(5)
    return httpx.Response(200, json={"img_generated": "late"})


def test_success():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(200, json={"img_generated": "T1VU"})

    result = submit(handler)

    assert result.imageData == "T1VU"
    assert seen["path"] == "/api/tryon"
    assert b"apparelImages" in seen["body"]


def test_server_error_is_classified_as_retryable():
    handler = lambda request: httpx.Response(500, json={"error": "Internal Server Error"})

    with pytest.raises(HttpStatusError) as exc_info:
        submit(handler)

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == {"error": "Internal Server Error"}
    classified = classify_error(exc_info.value)
    assert classified.user_message == "Server error, please try again."
    assert classified.retryable is True


def test_rate_limited():
    handler = lambda request: httpx.Response(429, json={"error": "Rate limit exceeded"})

    with pytest.raises(HttpStatusError) as exc_info:
        submit(handler)

    assert classify_error(exc_info.value).category is ErrorCategory.RATE_LIMIT


def test_rate_limited_keeps_reset_time():
    handler = lambda request: httpx.Response(
        429,
        json={"error": "Rate limit exceeded"},
        headers={"X-RateLimit-Reset": "2099-01-01T00:00:00+00:00"},
    )

    with pytest.raises(HttpStatusError) as exc_info:
        submit(handler)

    assert classify_error(exc_info.value).reset_at == "2099-01-01T00:00:00+00:00"


def test_non_json_error_body_is_kept_as_text():
    handler = lambda request: httpx.Response(502, text="Bad Gateway")

    with pytest.raises(HttpStatusError) as exc_info:
        submit(handler)

    assert exc_info.value.body == "Bad Gateway"


def test_missing_result_field():
    handler = lambda request: httpx.Response(200, json={"something": "else"})

    with pytest.raises(UnexpectedResponseError):
        submit(handler)


def test_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(NetworkError):
        submit(handler)


def test_deadline_cancels_the_request():
    with pytest.raises(RequestTimeoutError) as exc_info:
        submit(slow_handler, timeout=0.05)

    classified = classify_error(exc_info.value)
    assert classified.user_message == "Request timed out, please retry."
    assert classified.retryable is True


def test_signal_cancels_the_request():
    with pytest.raises(RequestCancelledError) as exc_info:
        submit(slow_handler, timeout=5.0, signal_after=0.01)

    assert classify_error(exc_info.value).visible is False


def test_against_the_api(app_factory):
    app = app_factory()

    async def scenario():
        async with RequestSubmitter(
            base_url="http://testserver", transport=httpx.ASGITransport(app=app)
        ) as submitter:
            return await submitter.submit(REQUEST)

    assert asyncio.run(scenario()).imageData == "R0VORVJBVEVE"
