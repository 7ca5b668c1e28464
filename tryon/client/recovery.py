"""
Outermost supervisor for the client pipeline.

Failures are classified and kept in a bounded in-memory log. Retryable
failures are re-run a few times with a linear delay. Once the budget is
spent the boundary refuses further runs until `hard_reset()`.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, List, Optional

from tryon.config import logger
from tryon.core.errors import (
    MESSAGE_UNEXPECTED,
    ClassifiedError,
    ErrorCategory,
    ErrorSeverity,
    classify_error,
)

DEFAULT_LOG_CAPACITY = 10
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000

Operation = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class ErrorLogEntry:
    timestamp: float
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    attempt: int


@dataclass(frozen=True)
class BoundaryOutcome:
    result: Any = None
    error: Optional[ClassifiedError] = None
    needs_reset: bool = False
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def _safe_classify(failure: BaseException) -> ClassifiedError:
    try:
        return classify_error(failure)
    except Exception:
        logger.error("Failed to classify error", exc_info=True)
        return ClassifiedError(
            category=ErrorCategory.SERVER_UNEXPECTED,
            user_message=MESSAGE_UNEXPECTED,
            retryable=False,
        )


class RecoveryBoundary:
    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        capacity: int = DEFAULT_LOG_CAPACITY,
        on_error: Optional[Callable[[ErrorLogEntry], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self._log: Deque[ErrorLogEntry] = deque(maxlen=capacity)
        self._on_error = on_error
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self.retry_count = 0
        self.needs_reset = False
        self._last_error: Optional[ClassifiedError] = None

    def recent_errors(self) -> List[ErrorLogEntry]:
        return list(self._log)

    def _record(self, error: ClassifiedError, failure: BaseException, attempt: int) -> None:
        try:
            entry = ErrorLogEntry(
                timestamp=self._clock(),
                category=error.category,
                severity=error.severity,
                message=str(failure) or type(failure).__name__,
                attempt=attempt,
            )
            self._log.append(entry)
            logger.warning(
                "Recovery boundary caught an error",
                extra={
                    "category": entry.category.value,
                    "severity": entry.severity.value,
                    "attempt": attempt,
                },
            )
            if self._on_error:
                self._on_error(entry)
        except Exception:
            logger.error("Failed to record boundary error", exc_info=True)

    async def run(self, operation: Operation) -> BoundaryOutcome:
        """
        Run `operation`, re-running it while failures stay retryable.

        Only task cancellation propagates; every other failure ends up in the
        returned BoundaryOutcome.
        While `needs_reset` is set the operation is not run at all; the last
        error is reported again until `hard_reset()`.
        """
        if self.needs_reset:
            logger.info("Recovery boundary needs a hard reset, operation skipped")
            return BoundaryOutcome(error=self._last_error, needs_reset=True)

        attempts = 0
        while True:
            attempts += 1
            try:
                result = await operation()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = _safe_classify(exc)
                self._record(error, exc, attempts)

                if not error.retryable or self.retry_count >= self.max_retries:
                    self.needs_reset = True
                    self._last_error = error
                    return BoundaryOutcome(
                        error=error, needs_reset=True, attempts=attempts
                    )

                self.retry_count += 1
                delay_ms = self.retry_delay_ms * self.retry_count
                logger.info(
                    "Recovery boundary retrying",
                    extra={"retry": self.retry_count, "delay_ms": delay_ms},
                )
                await asyncio.sleep(delay_ms / 1000)
                continue

            self.retry_count = 0
            self.needs_reset = False
            return BoundaryOutcome(result=result, attempts=attempts)

    def start(self, operation: Operation) -> asyncio.Task:
        """Run under supervision as a task owned by this boundary."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self.run(operation))
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def hard_reset(self) -> None:
        """Drop everything and start from a clean slate."""
        self.cancel()
        self._log.clear()
        self.retry_count = 0
        self.needs_reset = False
        self._last_error = None
        logger.info("Recovery boundary hard reset")
