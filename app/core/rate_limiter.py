"""
In-memory rate limiter by user UID.
Sliding one-hour window; the limit comes from RATE_LIMIT_PER_HOUR.
PHI-safe: UIDs are hashed before storage.
"""
import hashlib
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from app.core.config import get_settings

WINDOW_SECONDS = 3600  # 1 hour


@dataclass
class RateLimitDecision:
    """Outcome of a rate limit check."""
    allowed: bool
    remaining: int
    reset_seconds: int = 0


@dataclass
class RateLimitEntry:
    """Track request timestamps for a single UID."""
    timestamps: list[float] = field(default_factory=list)


class RateLimiter:
    """
    Sliding window rate limiter by UID.

    Uses UID hash (not raw UID) to avoid storing PII.
    """
    _instance: "RateLimiter | None" = None
    _lock = threading.Lock()

    def __new__(cls) -> "RateLimiter":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._entries: Dict[str, RateLimitEntry] = {}
                    instance._data_lock = threading.Lock()
                    instance._requests_per_hour: Optional[int] = None
                    cls._instance = instance
        return cls._instance

    @property
    def requests_per_hour(self) -> int:
        if self._requests_per_hour is not None:
            return self._requests_per_hour
        return get_settings().rate_limit_per_hour

    @staticmethod
    def _hash_uid(uid: str) -> str:
        """Hash UID to avoid storing PII."""
        return hashlib.sha256(uid.encode()).hexdigest()[:16]

    def _live_entry(self, uid_hash: str, now: float) -> RateLimitEntry:
        entry = self._entries.setdefault(uid_hash, RateLimitEntry())
        cutoff = now - WINDOW_SECONDS
        entry.timestamps = [ts for ts in entry.timestamps if ts > cutoff]
        return entry

    def check_and_record(self, uid: str) -> RateLimitDecision:
        """Check if a request is allowed and, if so, record it."""
        now = time.time()
        limit = self.requests_per_hour

        with self._data_lock:
            entry = self._live_entry(self._hash_uid(uid), now)

            if len(entry.timestamps) >= limit:
                oldest = min(entry.timestamps)
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    reset_seconds=max(0, int((oldest + WINDOW_SECONDS) - now)),
                )

            entry.timestamps.append(now)
            return RateLimitDecision(allowed=True, remaining=limit - len(entry.timestamps))

    def reset(self) -> None:
        """Reset all rate limit entries (for testing)."""
        with self._data_lock:
            self._entries.clear()

    def set_limit(self, requests_per_hour: Optional[int]) -> None:
        """Override the per-hour limit; None restores the configured value."""
        with self._data_lock:
            self._requests_per_hour = requests_per_hour


def get_rate_limiter() -> RateLimiter:
    """Get the singleton rate limiter instance."""
    return RateLimiter()
