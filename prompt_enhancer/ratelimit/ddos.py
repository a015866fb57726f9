"""Rapid-fire request detection per client IP."""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class BurstVerdict:
    blocked: bool
    retry_after: int = 0


@dataclass
class _BurstState:
    last_seen: float
    streak: int = 0
    blocked_until: Optional[float] = None


class BurstDetector:
    """Blocks IPs whose requests keep arriving faster than ``interval_seconds``.

    Each arrival closer than the interval to the previous one extends the
    streak; any slower arrival resets it. A streak longer than
    ``threshold`` blocks the IP for ``block_seconds`` regardless of quota.
    """

    def __init__(
        self,
        interval_seconds: float = 0.05,
        threshold: int = 10,
        block_seconds: float = 300,
        idle_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval_seconds = interval_seconds
        self.threshold = threshold
        self.block_seconds = block_seconds
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._states: Dict[str, _BurstState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def observe(self, ip: str) -> BurstVerdict:
        now = self._clock()
        state = self._states.get(ip)
        if state is None:
            self._states[ip] = _BurstState(last_seen=now)
            return BurstVerdict(blocked=False)

        if state.blocked_until is not None:
            if now < state.blocked_until:
                state.last_seen = now
                return BurstVerdict(blocked=True, retry_after=self._retry_after(state, now))
            state.blocked_until = None
            state.streak = 0

        if now - state.last_seen < self.interval_seconds:
            state.streak += 1
        else:
            state.streak = 0
        state.last_seen = now

        if state.streak > self.threshold:
            state.blocked_until = now + self.block_seconds
            state.streak = 0
            logger.warning(
                "Request burst from %s; blocking for %ss", ip, self.block_seconds
            )
            return BurstVerdict(blocked=True, retry_after=self._retry_after(state, now))
        return BurstVerdict(blocked=False)

    def is_blocked(self, ip: str) -> bool:
        state = self._states.get(ip)
        return bool(state and state.blocked_until is not None and self._clock() < state.blocked_until)

    @staticmethod
    def _retry_after(state: _BurstState, now: float) -> int:
        return max(1, int(math.ceil(state.blocked_until - now)))

    def sweep(self) -> int:
        now = self._clock()
        evicted = 0
        for ip, state in list(self._states.items()):
            if state.blocked_until is not None and now < state.blocked_until:
                continue
            if now - state.last_seen > self.idle_seconds:
                del self._states[ip]
                evicted += 1
        return evicted
