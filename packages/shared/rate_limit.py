"""Per-session sliding-window admission control."""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class Admission:
    allowed: bool
    remaining: int
    retry_after_ms: int = 0


class RateLimiter:
    """
    Sliding log of admitted request timestamps per session.

    A request is admitted only if fewer than ``max_requests`` admissions fall
    inside ``(now - window_ms, now]``. Denied requests are not recorded, so a
    client hammering the endpoint does not extend its own lockout.
    """

    def __init__(self, window_ms: int = 60_000, max_requests: int = 20, clock: Optional[Clock] = None):
        if window_ms <= 0 or max_requests <= 0:
            raise ValueError("window_ms and max_requests must be positive")
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._clock = clock or wall_clock_ms
        self._log: Dict[str, Deque[float]] = {}

    def _prune(self, entries: Deque[float], now: float) -> None:
        while entries and now - entries[0] >= self.window_ms:
            entries.popleft()

    def admit(self, session_id: str) -> Admission:
        now = self._clock()
        entries = self._log.setdefault(session_id, deque())
        self._prune(entries, now)
        if len(entries) >= self.max_requests:
            retry_after = int(entries[0] + self.window_ms - now)
            logger.info(
                "Rate limit hit",
                extra={"session_id": session_id, "context": {"retry_after_ms": retry_after}},
            )
            return Admission(allowed=False, remaining=0, retry_after_ms=max(retry_after, 0))
        entries.append(now)
        return Admission(allowed=True, remaining=self.max_requests - len(entries))

    def is_allowed(self, session_id: str) -> bool:
        return self.admit(session_id).allowed

    def cleanup(self) -> int:
        """Drop sessions with no admissions left in the window. Returns how many were dropped."""
        now = self._clock()
        stale = []
        for session_id, entries in self._log.items():
            self._prune(entries, now)
            if not entries:
                stale.append(session_id)
        for session_id in stale:
            del self._log[session_id]
        return len(stale)

    def reset(self) -> None:
        self._log.clear()

    def __len__(self) -> int:
        return len(self._log)
