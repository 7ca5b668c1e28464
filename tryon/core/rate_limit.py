"""
Rate limiting module for per-client request throttling.
Each client key gets a fixed number of points per rolling window
(24 hours by default). The window starts with the client's first request.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from tryon.config import RATE_LIMIT_WINDOW_SECONDS, logger
from tryon.core.errors import RateLimitExceeded

UNKNOWN_CLIENT = "unknown"


@dataclass
class RateLimitRecord:
    client_key: str
    consumed: int
    window_start: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    consumed: int
    remaining: int
    limit: int
    reset_at: str


class RateLimitStore(Protocol):
    """Quota storage. Implementations must make consume() atomic per key."""

    def consume(self, key: str) -> RateLimitDecision:
        ...

    def peek(self, key: str) -> RateLimitDecision:
        ...


class InMemoryRateLimitStore:
    """Single-process store; a multi-instance deployment needs a shared atomic store."""

    def __init__(
        self,
        points: int,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if points <= 0:
            raise ValueError("points must be a positive integer")
        self.points = points
        self.window_seconds = window_seconds
        self._clock = clock
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()

    def _current_record(self, key: str, now: float) -> RateLimitRecord:
        record = self._records.get(key)
        if record is None:
            record = RateLimitRecord(client_key=key, consumed=0, window_start=now)
            self._records[key] = record
        elif now - record.window_start >= self.window_seconds:
            record.consumed = 0
            record.window_start = now
        return record

    def _decision(self, record: RateLimitRecord, allowed: bool) -> RateLimitDecision:
        reset_ts = record.window_start + self.window_seconds
        return RateLimitDecision(
            allowed=allowed,
            consumed=record.consumed,
            remaining=max(0, self.points - record.consumed),
            limit=self.points,
            reset_at=datetime.fromtimestamp(reset_ts, tz=timezone.utc).isoformat(),
        )

    def consume(self, key: str) -> RateLimitDecision:
        with self._lock:
            record = self._current_record(key, self._clock())
            if record.consumed >= self.points:
                return self._decision(record, allowed=False)
            record.consumed += 1
            return self._decision(record, allowed=True)

    def peek(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            record = self._records.get(key)
            if record is None or now - record.window_start >= self.window_seconds:
                # read-only: the window only starts on the first consume
                record = RateLimitRecord(client_key=key, consumed=0, window_start=now)
            return self._decision(record, allowed=record.consumed < self.points)


class RateLimiter:
    def __init__(self, store: RateLimitStore):
        self.store = store

    def check(self, client_key: Optional[str]) -> RateLimitDecision:
        """
        Consume one point for the client.

        Args:
            client_key: Client identity; None falls back to the shared unknown key

        Returns:
            RateLimitDecision for the accepted request

        Raises:
            RateLimitExceeded: If the quota for the current window is used up
        """
        key = client_key or UNKNOWN_CLIENT
        decision = self.store.consume(key)

        logger.info(
            "Rate limit check",
            extra={
                "client_key": key,
                "consumed": decision.consumed,
                "limit": decision.limit,
                "allowed": decision.allowed,
                "remaining": decision.remaining,
            },
        )

        if not decision.allowed:
            raise RateLimitExceeded(key, decision.limit, decision.reset_at)
        return decision

    def status(self, client_key: Optional[str]) -> RateLimitDecision:
        """Current quota status without consuming. Useful for status endpoints."""
        return self.store.peek(client_key or UNKNOWN_CLIENT)
