"""
In-process limiter for failed login attempts.

Failures are counted per username and per username+client IP inside a
fixed window. Once ``max_failures`` is reached the key is blocked for
``block_seconds``. State lives in memory, so each API process keeps its own
counters; sync login routes run in a thread pool, so every access
holds ``_lock``.
"""
import math
import threading
import time
import unicodedata
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

CLEANUP_INTERVAL_SECONDS = 60
STALE_ENTRY_SECONDS = 60 * 60


@dataclass
class RateLimitEntry:
    count: int
    window_start_at: float
    blocked_until: float
    last_seen_at: float


@dataclass
class RateLimitDecision:
    blocked: bool
    retry_after_seconds: int


def normalize_username(username: str) -> str:
    return unicodedata.normalize("NFC", username.strip()).lower()


def extract_client_ip(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    forwarded_for = (headers.get("x-forwarded-for") or "").strip()
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    return client_host or "unknown"


def build_login_keys(username: str, client_ip: str) -> List[str]:
    normalized = normalize_username(username)
    return [f"user:{normalized}", f"user-ip:{normalized}:{client_ip}"]


class LoginRateLimiter:
    """Sliding block window over failed logins."""

    def __init__(
        self,
        max_failures: int = 3,
        window_seconds: float = 120,
        block_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_failures = max_failures
        self.window_seconds = window_seconds
        self.block_seconds = block_seconds
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._last_cleanup_at = 0.0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _maybe_cleanup(self, now: float):
        if now - self._last_cleanup_at < CLEANUP_INTERVAL_SECONDS:
            return

        self._last_cleanup_at = now
        for key, entry in list(self._entries.items()):
            if now - entry.last_seen_at > STALE_ENTRY_SECONDS and entry.blocked_until < now:
                self._entries.pop(key, None)

    def _reset_if_window_elapsed(self, entry: RateLimitEntry, now: float):
        if entry.window_start_at + self.window_seconds <= now:
            entry.count = 0
            entry.window_start_at = now
            entry.blocked_until = 0

    def check(self, keys: List[str]) -> RateLimitDecision:
        retry_after = 0
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)

            for key in keys:
                entry = self._entries.get(key)
                if not entry:
                    continue
                if entry.blocked_until > now:
                    retry_after = max(retry_after, max(1, math.ceil(entry.blocked_until - now)))
                    continue
                self._reset_if_window_elapsed(entry, now)

        return RateLimitDecision(blocked=retry_after > 0, retry_after_seconds=retry_after)

    def record_failure(self, keys: List[str]):
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)

            for key in keys:
                entry = self._entries.get(key)
                if entry is None:
                    entry = RateLimitEntry(count=0, window_start_at=now, blocked_until=0, last_seen_at=now)
                    self._entries[key] = entry

                self._reset_if_window_elapsed(entry, now)
                entry.count += 1
                entry.last_seen_at = now

                if entry.count >= self.max_failures:
                    entry.blocked_until = now + self.block_seconds

    def clear(self, keys: List[str]):
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def reset(self):
        with self._lock:
            self._entries.clear()
            self._last_cleanup_at = 0.0
