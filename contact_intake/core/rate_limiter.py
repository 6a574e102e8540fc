"""
contact_intake/core/rate_limiter.py — Per-client fixed-window rate limiting
Form submissions: RateLimiter (N requests per W-second window per client key).
Auxiliary endpoints: slowapi limiter with per-endpoint string limits.

The window is fixed, not sliding: a client can issue up to 2N-1 requests
across a boundary that straddles two windows.
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from loguru import logger
from slowapi import Limiter
from slowapi.util import get_remote_address

from contact_intake.core import logging as app_logging
from contact_intake.core.errors import RateLimited
from contact_intake.models import ClientSource

# Endpoint-level limiter for routes outside the submission pipeline
endpoint_limiter = Limiter(key_func=get_remote_address)

RATE_LIMITS = {
    # Health check: moderate
    "health": "30/minute",
}

UNKNOWN_CLIENT = "unknown"

# Checked in order; the first non-empty header wins.
_FORWARDED_HEADERS = ("x-forwarded-for", "x-real-ip", "x-client-ip")


# ──────────────────────────────────────────────────────────────────────────────
# Client key derivation
# ──────────────────────────────────────────────────────────────────────────────

def resolve_client_key(
    source: ClientSource,
    trust_forwarded_headers: bool = True,
) -> str:
    """
    First IP of X-Forwarded-For, else X-Real-IP, else X-Client-IP, else the
    transport peer address, else "unknown".
    Proxy headers are taken verbatim; disable trust_forwarded_headers when the
    service is not behind a proxy that overwrites them.
    """
    if trust_forwarded_headers:
        headers = {k.lower(): v for k, v in (source.headers or {}).items()}
        for name in _FORWARDED_HEADERS:
            value = headers.get(name)
            if not value:
                continue
            candidate = value.split(",")[0].strip()
            if candidate:
                return candidate
    if source.peer_address and source.peer_address.strip():
        return source.peer_address.strip()
    return UNKNOWN_CLIENT


# ──────────────────────────────────────────────────────────────────────────────
# Fixed-window limiter
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class ClientWindow:
    client_key: str
    count: int = 0
    window_reset_at: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    # Set by sweep/reset once the entry has left the registry
    evicted: bool = False

    def is_expired(self, now: float) -> bool:
        return now >= self.window_reset_at


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of an admitted request. Rejections raise RateLimited instead."""

    client_key: str
    count: int
    remaining: int
    reset_at: float


class RateLimiter:
    """
    Keyed fixed-window counter. Each client key owns a lock; the registry lock
    only guards membership of the window map and is never held while waiting
    on a key lock.
    """

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, ClientWindow] = {}
        self._registry_lock = threading.Lock()

    def _entry(self, client_key: str) -> ClientWindow:
        with self._registry_lock:
            entry = self._windows.get(client_key)
            if entry is None:
                entry = ClientWindow(client_key=client_key)
                self._windows[client_key] = entry
            return entry

    def admit(self, client_key: str) -> RateLimitDecision:
        """
        Count one request for client_key.
        Raises RateLimited when the current window is already full.
        """
        while True:
            entry = self._entry(client_key)
            with entry.lock:
                if entry.evicted:
                    # Lost a race with sweep(); fetch the replacement entry
                    continue
                return self._admit_locked(entry)

    def _admit_locked(self, entry: ClientWindow) -> RateLimitDecision:
        now = self._clock()

        if entry.count == 0 or entry.is_expired(now):
            entry.count = 1
            entry.window_reset_at = now + self.window_seconds
            app_logging.log_rate_limit_decision(
                entry.client_key, "new_window", entry.count, self.max_requests,
            )
            return self._decision(entry)

        if entry.count >= self.max_requests:
            retry_after = max(1, math.ceil(entry.window_reset_at - now))
            app_logging.log_rate_limit_decision(
                entry.client_key, "limit_exceeded", entry.count, self.max_requests,
                retry_after_seconds=retry_after,
            )
            raise RateLimited(retry_after_seconds=retry_after)

        entry.count += 1
        app_logging.log_rate_limit_decision(
            entry.client_key, "counted", entry.count, self.max_requests,
        )
        return self._decision(entry)

    def _decision(self, entry: ClientWindow) -> RateLimitDecision:
        return RateLimitDecision(
            client_key=entry.client_key,
            count=entry.count,
            remaining=max(0, self.max_requests - entry.count),
            reset_at=entry.window_reset_at,
        )

    def peek(self, client_key: str) -> Optional[ClientWindow]:
        """Snapshot of the live window for client_key, None if absent or expired."""
        with self._registry_lock:
            entry = self._windows.get(client_key)
        if entry is None:
            return None
        with entry.lock:
            if entry.evicted or entry.count == 0 or entry.is_expired(self._clock()):
                return None
            return ClientWindow(
                client_key=entry.client_key,
                count=entry.count,
                window_reset_at=entry.window_reset_at,
            )

    def sweep(self) -> int:
        """
        Drop expired windows. Keys whose lock is held by an in-flight admit()
        are skipped and picked up by a later sweep. Returns the number removed.
        """
        now = self._clock()
        removed = 0
        with self._registry_lock:
            for key, entry in list(self._windows.items()):
                if not entry.lock.acquire(blocking=False):
                    continue
                try:
                    if entry.count == 0 or entry.is_expired(now):
                        entry.evicted = True
                        del self._windows[key]
                        removed += 1
                finally:
                    entry.lock.release()
        return removed

    def reset(self, client_key: str) -> None:
        with self._registry_lock:
            entry = self._windows.pop(client_key, None)
        if entry is not None:
            with entry.lock:
                entry.evicted = True

    def reset_all(self) -> None:
        with self._registry_lock:
            entries = list(self._windows.values())
            self._windows.clear()
        for entry in entries:
            with entry.lock:
                entry.evicted = True

    def active_clients(self) -> int:
        with self._registry_lock:
            return len(self._windows)


# ──────────────────────────────────────────────────────────────────────────────
# Background sweep
# ──────────────────────────────────────────────────────────────────────────────

class WindowSweeper:
    """Daemon thread calling RateLimiter.sweep() on a coarse interval."""

    def __init__(self, limiter: RateLimiter, interval_seconds: float = 60) -> None:
        self._limiter = limiter
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            removed = self._limiter.sweep()
            if removed:
                logger.debug(f"Rate limit sweep removed {removed} expired windows.")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="rate-limit-sweeper",
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
