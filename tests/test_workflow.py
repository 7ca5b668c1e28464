import asyncio

import httpx
import pytest

from tryon.client.preparer import RawImage
from tryon.client.submitter import RequestSubmitter
from tryon.client.toast import Toaster
from tryon.client.workflow import Phase, RetryCoordinator, TryonWorkflow
from tryon.core.errors import (
    ErrorCategory,
    HttpStatusError,
    RequestCancelledError,
    RequestTimeoutError,
)

from conftest import png_bytes


class ScriptedOperation:
    """Raises or returns the scripted outcomes in order; the last one repeats."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def make_coordinator(shown, **kwargs):
    kwargs.setdefault("base_delay_ms", 1)
    return RetryCoordinator(toaster=Toaster(on_show=shown.append), **kwargs)


def test_success_reaches_transformed():
    async def scenario():
        coordinator = make_coordinator([])
        state = await coordinator.run(ScriptedOperation("T1VU"))
        return coordinator, state

    coordinator, state = asyncio.run(scenario())

    assert state.phase is Phase.TRANSFORMED
    assert state.image_data == "T1VU"
    assert coordinator.retry_state.attempt == 0


def test_server_error_then_successful_retry():
    shown = []
    operation = ScriptedOperation(HttpStatusError(500), "T1VU")

    async def scenario():
        coordinator = make_coordinator(shown)
        state = await coordinator.run(operation)
        assert state.phase is Phase.ERROR
        assert state.error.user_message == "Server error, please try again."
        assert coordinator.can_retry

        task = coordinator.retry()
        assert coordinator.state.phase is Phase.PROCESSING
        return coordinator, await task

    coordinator, state = asyncio.run(scenario())

    assert [toast.message for toast in shown] == ["Server error, please try again."]
    assert state.phase is Phase.TRANSFORMED
    assert operation.calls == 2
    assert coordinator.retry_state.attempt == 0


def test_timeout_is_retryable():
    async def scenario():
        coordinator = make_coordinator([])
        await coordinator.run(ScriptedOperation(RequestTimeoutError("slow")))
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.state.error.category is ErrorCategory.TIMEOUT
    assert coordinator.state.error.user_message == "Request timed out, please retry."
    assert coordinator.can_retry


def test_retry_budget_is_enforced():
    operation = ScriptedOperation(HttpStatusError(500))

    async def scenario():
        coordinator = make_coordinator([], max_attempts=3)
        await coordinator.run(operation)
        await coordinator.retry()
        await coordinator.retry()
        assert coordinator.retry_state.attempt == 3
        assert coordinator.can_retry is False
        assert coordinator.retry() is None
        await asyncio.sleep(0.01)
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.state.phase is Phase.ERROR
    assert operation.calls == 3


def test_validation_errors_are_not_retried():
    async def scenario():
        coordinator = make_coordinator([])
        await coordinator.run(ScriptedOperation(HttpStatusError(400)))
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.state.error.user_message == "Invalid images uploaded."
    assert coordinator.can_retry is False
    assert coordinator.retry() is None


def test_backoff_doubles_and_is_capped():
    delays = []

    async def scenario():
        coordinator = make_coordinator([], max_attempts=10, base_delay_ms=1, max_delay_ms=4)
        await coordinator.run(ScriptedOperation(HttpStatusError(503)))
        delays.append(coordinator.retry_state.next_delay_ms)
        for _ in range(3):
            await coordinator.retry()
            delays.append(coordinator.retry_state.next_delay_ms)

    asyncio.run(scenario())

    assert delays == [1, 2, 4, 4]


def test_cancellation_returns_to_idle_silently():
    shown = []

    async def scenario():
        coordinator = make_coordinator(shown)
        await coordinator.run(ScriptedOperation(RequestCancelledError("retake")))
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.state.phase is Phase.IDLE
    assert coordinator.retry_state.attempt == 0
    assert shown == []


def test_reset_cancels_pending_retry():
    operation = ScriptedOperation(HttpStatusError(500), "T1VU")

    async def scenario():
        coordinator = make_coordinator([], base_delay_ms=10_000)
        await coordinator.run(operation)
        task = coordinator.retry()
        coordinator.reset()
        with pytest.raises(asyncio.CancelledError):
            await task
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.state.phase is Phase.IDLE
    assert coordinator.retry_state.attempt == 0
    assert operation.calls == 1


def test_dismiss_error_cancels_pending_retry():
    operation = ScriptedOperation(HttpStatusError(500))

    async def scenario():
        coordinator = make_coordinator([], base_delay_ms=10_000)
        await coordinator.run(operation)
        task = coordinator.retry()
        coordinator.dismiss_error()
        await asyncio.sleep(0)
        return coordinator, task

    coordinator, task = asyncio.run(scenario())

    assert task.cancelled()
    assert coordinator.state.phase is Phase.IDLE
    assert operation.calls == 1


def test_result_after_reset_is_discarded():
    release = None

    async def slow_operation():
        await release.wait()
        return "stale"

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        coordinator = make_coordinator([])
        running = asyncio.ensure_future(coordinator.run(slow_operation))
        await asyncio.sleep(0)
        coordinator.reset()
        release.set()
        await running
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.state.phase is Phase.IDLE


def test_workflow_prepares_and_submits():
    def handler(request):
        return httpx.Response(200, json={"img_generated": "T1VU"})

    async def scenario():
        submitter = RequestSubmitter(
            base_url="http://testserver", transport=httpx.MockTransport(handler)
        )
        async with submitter:
            workflow = TryonWorkflow(submitter)
            image = RawImage(png_bytes(), "image/png")
            state = await workflow.start(image, [image])
            workflow.retake()
            return state, workflow.state

    state, after_retake = asyncio.run(scenario())

    assert state.phase is Phase.TRANSFORMED
    assert state.image_data == "T1VU"
    assert after_retake.phase is Phase.IDLE


def test_rate_limit_retry_waits_for_quota_window():
    now = [0.0]
    limited = HttpStatusError(
        429, {"error": "Rate limit exceeded", "reset_at": "1970-01-01T00:01:00+00:00"}
    )
    operation = ScriptedOperation(limited, "T1VU")

    async def scenario():
        coordinator = make_coordinator([], clock=lambda: now[0])
        await coordinator.run(operation)
        assert coordinator.state.error.category is ErrorCategory.RATE_LIMIT
        assert coordinator.rate_limit_wait_seconds == 60
        assert coordinator.can_retry is False
        assert coordinator.retry() is None

        now[0] = 60.0
        assert coordinator.can_retry
        return await coordinator.retry()

    state = asyncio.run(scenario())

    assert state.phase is Phase.TRANSFORMED
    assert operation.calls == 2


def test_rate_limit_without_reset_time_uses_backoff():
    async def scenario():
        coordinator = make_coordinator([])
        await coordinator.run(ScriptedOperation(HttpStatusError(429)))
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.rate_limit_wait_seconds == 0
    assert coordinator.can_retry


def test_cancelling_the_caller_returns_to_idle():
    async def hanging_operation():
        await asyncio.sleep(10)
        return "late"

    async def scenario():
        coordinator = make_coordinator([])
        running = asyncio.ensure_future(coordinator.run(hanging_operation))
        await asyncio.sleep(0)
        assert coordinator.state.phase is Phase.PROCESSING
        running.cancel()
        with pytest.raises(asyncio.CancelledError):
            await running
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.state.phase is Phase.IDLE
    assert coordinator.retry_state.attempt == 0


def test_timer_without_operation_keeps_state():
    async def scenario():
        coordinator = make_coordinator([])
        return await coordinator._delayed_attempt(0, 0)

    assert asyncio.run(scenario()).phase is Phase.IDLE
