"""
Try-on workflow state machine.

    Idle -> Processing -> Transformed
                       -> Error -> (retry) -> Processing

RetryCoordinator is the only thing allowed to move between states. Retries
run after an exponential backoff on a timer task the coordinator owns, so a
reset or a dismissed error always cancels a retry that has not fired yet.
"""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, Sequence

from tryon.config import logger
from tryon.core.errors import ClassifiedError, ErrorCategory, classify_error, parse_reset_at

from .cancellation import CancelSignal
from .preparer import ImagePreparer, RawImage
from .submitter import RequestSubmitter
from .toast import Toaster

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30000

Operation = Callable[[], Awaitable[str]]


class Phase(str, enum.Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    TRANSFORMED = "transformed"
    ERROR = "error"


@dataclass(frozen=True)
class WorkflowState:
    phase: Phase
    image_data: Optional[str] = None
    error: Optional[ClassifiedError] = None


IDLE = WorkflowState(Phase.IDLE)


@dataclass(frozen=True)
class RetryState:
    attempt: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    next_delay_ms: int = 0


class RetryCoordinator:
    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
        toaster: Optional[Toaster] = None,
        on_change: Optional[Callable[[WorkflowState], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.toaster = toaster
        self._on_change = on_change
        self._clock = clock
        self._state = IDLE
        self._retry = RetryState(max_attempts=max_attempts)
        self._operation: Optional[Operation] = None
        self._pending: Optional[asyncio.Task] = None
        # bumped on every run/reset; results from older generations are dropped
        self._generation = 0

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def retry_state(self) -> RetryState:
        return self._retry

    @property
    def can_retry(self) -> bool:
        error = self._state.error
        return (
            self._state.phase is Phase.ERROR
            and error is not None
            and error.retryable
            and self._operation is not None
            and self._retry.attempt < self._retry.max_attempts
            and self.rate_limit_wait_seconds == 0
        )

    @property
    def rate_limit_wait_seconds(self) -> float:
        """Seconds until the quota window of a RATE_LIMIT error rolls over."""
        error = self._state.error
        if error is None or error.category is not ErrorCategory.RATE_LIMIT:
            return 0.0
        reset_ts = parse_reset_at(error.reset_at)
        if reset_ts is None:
            return 0.0
        return max(0.0, reset_ts - self._clock())

    def _set_state(self, state: WorkflowState) -> None:
        self._state = state
        logger.debug(
            "Workflow state changed",
            extra={"phase": state.phase.value, "attempt": self._retry.attempt},
        )
        if self._on_change:
            self._on_change(state)

    def _backoff_ms(self, attempt: int) -> int:
        return min(self.base_delay_ms * 2 ** (attempt - 1), self.max_delay_ms)

    def _enter_processing(self) -> None:
        attempt = self._retry.attempt + 1
        self._retry = replace(
            self._retry, attempt=attempt, next_delay_ms=self._backoff_ms(attempt)
        )
        self._set_state(WorkflowState(Phase.PROCESSING))

    def _release_attempt(self) -> None:
        self._retry = replace(self._retry, attempt=max(0, self._retry.attempt - 1))

    def _fresh_retry_state(self) -> RetryState:
        return RetryState(max_attempts=self.max_attempts)

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def run(self, operation: Operation) -> WorkflowState:
        """Start a new top-level operation and wait for its first attempt."""
        self._cancel_pending()
        self._generation += 1
        self._operation = operation
        self._retry = self._fresh_retry_state()
        self._enter_processing()
        return await self._attempt(operation, self._generation)

    async def _attempt(self, operation: Operation, generation: int) -> WorkflowState:
        try:
            image_data = await operation()
        except asyncio.CancelledError:
            # reset() and dismiss_error() bump the generation and own the state;
            # otherwise the awaiting task itself was cancelled
            if generation == self._generation:
                self._generation += 1
                self._release_attempt()
                self._set_state(IDLE)
            raise
        except Exception as exc:
            if generation != self._generation:
                return self._state
            classified = classify_error(exc)
            if classified.category is ErrorCategory.CANCELLED:
                # user-initiated; not shown and not counted against the budget
                self._release_attempt()
                self._set_state(IDLE)
                return self._state

            logger.warning(
                "Try-on attempt failed",
                extra={
                    "category": classified.category.value,
                    "status": classified.http_status,
                    "attempt": self._retry.attempt,
                    "retryable": classified.retryable,
                },
            )
            self._set_state(WorkflowState(Phase.ERROR, error=classified))
            if self.toaster:
                self.toaster.show_error(classified)
            return self._state

        if generation != self._generation:
            return self._state
        self._retry = self._fresh_retry_state()
        self._set_state(WorkflowState(Phase.TRANSFORMED, image_data=image_data))
        return self._state

    def retry(self) -> Optional[asyncio.Task]:
        """
        Schedule another attempt after the current backoff delay.

        Returns the timer task, or None when retrying is not allowed (the
        presentation layer shows the action as disabled in that case).
        """
        if not self.can_retry:
            logger.info(
                "Retry ignored",
                extra={
                    "phase": self._state.phase.value,
                    "attempt": self._retry.attempt,
                    "max_attempts": self._retry.max_attempts,
                    "rate_limit_wait_seconds": self.rate_limit_wait_seconds,
                },
            )
            return None

        delay_ms = self._retry.next_delay_ms
        if self.toaster:
            self.toaster.dismiss()
        self._enter_processing()
        self._pending = asyncio.get_running_loop().create_task(
            self._delayed_attempt(delay_ms, self._generation)
        )
        return self._pending

    async def _delayed_attempt(self, delay_ms: int, generation: int) -> WorkflowState:
        await asyncio.sleep(delay_ms / 1000)
        if self._operation is None:
            return self._state
        return await self._attempt(self._operation, generation)

    def dismiss_error(self) -> None:
        """User closed the error: drop any scheduled retry and go back to Idle."""
        had_pending = self._pending is not None and not self._pending.done()
        self._cancel_pending()
        if self.toaster:
            self.toaster.dismiss()
        if self._state.phase is Phase.ERROR or had_pending:
            self._generation += 1
            self._set_state(IDLE)

    def reset(self) -> None:
        """Start over from any state."""
        self._cancel_pending()
        self._generation += 1
        self._operation = None
        self._retry = self._fresh_retry_state()
        if self.toaster:
            self.toaster.dismiss()
        self._set_state(IDLE)


class TryonWorkflow:
    """
    Glue for one UI session: prepare images, submit them, track the outcome.

    A CancelSignal per started operation is threaded through preparation and
    submission; `retake()` fires it and resets the coordinator.
    """

    def __init__(
        self,
        submitter: RequestSubmitter,
        preparer: Optional[ImagePreparer] = None,
        coordinator: Optional[RetryCoordinator] = None,
    ):
        self.submitter = submitter
        self.preparer = preparer or ImagePreparer()
        self.coordinator = coordinator or RetryCoordinator()
        self._signal: Optional[CancelSignal] = None

    @property
    def state(self) -> WorkflowState:
        return self.coordinator.state

    async def start(
        self, model_image: RawImage, apparel_images: Sequence[RawImage]
    ) -> WorkflowState:
        if self._signal is not None:
            self._signal.cancel("superseded by a new request")
        signal = CancelSignal()
        self._signal = signal

        async def operation() -> str:
            request = await self.preparer.prepare_request(model_image, apparel_images, signal)
            result = await self.submitter.submit(request, signal)
            return result.imageData

        return await self.coordinator.run(operation)

    def retry(self) -> Optional[asyncio.Task]:
        return self.coordinator.retry()

    def retake(self) -> None:
        if self._signal is not None:
            self._signal.cancel("retake")
            self._signal = None
        self.coordinator.reset()
