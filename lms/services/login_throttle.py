"""
Per-identifier login failure counter with a timed lockout.

Fixed-window semantics: every ``max_attempts`` consecutive failures lock the
identifier for ``lock_seconds``; the counter restarts at zero once locked and
the first failure after the lock expires counts as 1 again. An unlocked count
that sees no new failure for ``lock_seconds`` is forgotten too, and stale
buckets are swept at most once per ``prune_every`` seconds.

State lives in process memory. Mutations never await, so each call is atomic
under the event loop; a multi-node deployment needs a shared store instead.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from lms.config import Config
from lms.errors import RateLimitError
from lms.utils.time_utils import seconds_until

logger = logging.getLogger(__name__)


@dataclass
class Bucket:
    failures: int = 0
    locked_until: float = 0.0
    last_failure: float = 0.0


class LoginThrottle:
    def __init__(
        self,
        max_attempts: int = 5,
        lock_seconds: int = 600,
        clock: Callable[[], float] = time.time,
        prune_every: int = 60,
    ):
        self.max_attempts = max_attempts
        self.lock_seconds = lock_seconds
        self.clock = clock
        self.prune_every = prune_every
        self._buckets: Dict[str, Bucket] = {}
        self._pruned_at = 0.0

    @staticmethod
    def key_for(email: str) -> str:
        return f"login:{email.strip().lower()}"

    def remaining_lock(self, key: str) -> Optional[int]:
        """Seconds left on an active lock, or None when the key is not locked."""
        bucket = self._buckets.get(key)
        if bucket is None:
            return None
        now = self.clock()
        if now < bucket.locked_until:
            return max(1, seconds_until(bucket.locked_until, now))
        return None

    def check(self, key: str) -> None:
        remaining = self.remaining_lock(key)
        if remaining is not None:
            logger.warning(f"Login rejected for locked key {key} ({remaining}s left)")
            raise RateLimitError(remaining)

    def _stale(self, bucket: Bucket, now: float) -> bool:
        if bucket.locked_until:
            return now >= bucket.locked_until
        return now - bucket.last_failure >= self.lock_seconds

    def _prune(self, now: float) -> None:
        if now - self._pruned_at < self.prune_every:
            return
        self._pruned_at = now
        stale = [key for key, bucket in self._buckets.items() if self._stale(bucket, now)]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug(f"Dropped {len(stale)} stale login buckets")

    def record_failure(self, key: str) -> Bucket:
        now = self.clock()
        self._prune(now)
        bucket = self._buckets.get(key)
        if bucket is None or self._stale(bucket, now):
            bucket = Bucket(failures=1, locked_until=0.0, last_failure=now)
            self._buckets[key] = bucket
        else:
            bucket.failures += 1
            bucket.last_failure = now

        if bucket.failures >= self.max_attempts:
            bucket.locked_until = now + self.lock_seconds
            bucket.failures = 0
            logger.warning(f"Too many failed logins for {key}, locked for {self.lock_seconds}s")
        return bucket

    def reset(self, key: str) -> None:
        self._buckets.pop(key, None)

    def peek(self, key: str) -> Optional[Bucket]:
        return self._buckets.get(key)


login_throttle = LoginThrottle(
    max_attempts=Config.LOGIN_MAX_ATTEMPTS,
    lock_seconds=Config.LOGIN_LOCK_MINUTES * 60,
)


def get_login_throttle() -> LoginThrottle:
    return login_throttle
