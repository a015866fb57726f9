"""Failed authentication tracking per client IP."""

import logging
import time
from typing import Callable, Dict, Optional

from .models import FailedAttemptRecord

logger = logging.getLogger(__name__)


class FailedAttemptTracker:
    """Temporarily blocks IPs that keep presenting bad credentials.

    ``max_attempts`` failures within ``window_seconds`` of the first one
    block the IP for ``block_seconds``. Failures spread further apart than
    the window restart the count.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: float = 300,
        block_seconds: float = 600,
        idle_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.block_seconds = block_seconds
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._records: Dict[str, FailedAttemptRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def get(self, ip: str) -> Optional[FailedAttemptRecord]:
        return self._records.get(ip)

    def record_failure(self, ip: str) -> FailedAttemptRecord:
        now = self._clock()
        record = self._records.get(ip)

        if record is None:
            record = FailedAttemptRecord(count=1, first_attempt=now, last_attempt=now)
            self._records[ip] = record
            return record

        if record.blocked and record.blocked_until is not None and now >= record.blocked_until:
            # Block served; start over from this failure.
            record.blocked = False
            record.blocked_until = None
            record.count = 0
            record.first_attempt = now

        if now - record.first_attempt > self.window_seconds:
            record.count = 1
            record.first_attempt = now
        else:
            record.count += 1
        record.last_attempt = now

        if not record.blocked and record.count >= self.max_attempts:
            record.blocked = True
            record.blocked_until = now + self.block_seconds
            logger.warning(
                "Blocking %s for %ss after %d failed authentication attempts",
                ip, self.block_seconds, record.count,
            )
        return record

    def is_blocked(self, ip: str) -> bool:
        record = self._records.get(ip)
        if record is None or not record.blocked or record.blocked_until is None:
            return False
        return self._clock() < record.blocked_until

    def retry_after(self, ip: str) -> int:
        """Seconds until the IP's block ends (0 when not blocked)."""
        record = self._records.get(ip)
        if not self.is_blocked(ip) or record is None or record.blocked_until is None:
            return 0
        return max(1, int(record.blocked_until - self._clock() + 0.999))

    def clear_on_success(self, ip: str) -> None:
        self._records.pop(ip, None)

    def sweep(self) -> int:
        """Evict idle records and reset served blocks. Returns evictions."""
        now = self._clock()
        evicted = 0
        for ip, record in list(self._records.items()):
            if record.blocked:
                if record.blocked_until is not None and now >= record.blocked_until:
                    record.blocked = False
                    record.blocked_until = None
                    record.count = 0
                    record.first_attempt = now
            elif now - record.last_attempt > self.idle_seconds:
                del self._records[ip]
                evicted += 1
        return evicted
