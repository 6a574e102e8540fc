"""
tests/test_rate_limiter.py — Unit tests for fixed-window rate limiting
"""
from __future__ import annotations

import threading

import pytest

from contact_intake.core.errors import RateLimited
from contact_intake.core.rate_limiter import (
    UNKNOWN_CLIENT,
    RateLimiter,
    WindowSweeper,
    resolve_client_key,
)
from contact_intake.models import ClientSource


# ──────────────────────────────────────────────────────────────────────────────
# Admission
# ──────────────────────────────────────────────────────────────────────────────

def test_first_request_opens_window(limiter, clock):
    decision = limiter.admit("198.51.100.7")
    assert decision.count == 1
    assert decision.remaining == 4
    assert decision.reset_at == clock.now + 900


def test_sixth_request_in_window_is_rejected(limiter):
    for _ in range(5):
        limiter.admit("198.51.100.7")
    with pytest.raises(RateLimited) as exc_info:
        limiter.admit("198.51.100.7")
    assert 0 < exc_info.value.retry_after_seconds <= 900
    assert exc_info.value.code == "RATE_LIMIT_EXCEEDED"


def test_rejection_does_not_increment_count(limiter):
    for _ in range(5):
        limiter.admit("198.51.100.7")
    for _ in range(3):
        with pytest.raises(RateLimited):
            limiter.admit("198.51.100.7")
    assert limiter.peek("198.51.100.7").count == 5


def test_retry_after_rounds_up(limiter, clock):
    for _ in range(5):
        limiter.admit("198.51.100.7")
    clock.advance(899.2)
    with pytest.raises(RateLimited) as exc_info:
        limiter.admit("198.51.100.7")
    assert exc_info.value.retry_after_seconds == 1


def test_admission_at_reset_time_starts_new_window(limiter, clock):
    for _ in range(5):
        limiter.admit("198.51.100.7")
    clock.advance(900)
    decision = limiter.admit("198.51.100.7")
    assert decision.count == 1


def test_fixed_window_allows_burst_across_boundary(limiter, clock):
    limiter.admit("198.51.100.7")
    clock.advance(899)
    for _ in range(4):
        limiter.admit("198.51.100.7")
    clock.advance(1)
    for _ in range(5):
        limiter.admit("198.51.100.7")
    # 2N - 1 admitted within one second
    with pytest.raises(RateLimited):
        limiter.admit("198.51.100.7")


def test_independent_clients_do_not_interfere(limiter):
    for _ in range(5):
        limiter.admit("198.51.100.7")
    decision = limiter.admit("198.51.100.8")
    assert decision.count == 1
    with pytest.raises(RateLimited):
        limiter.admit("198.51.100.7")


def test_invalid_limits_rejected():
    with pytest.raises(ValueError):
        RateLimiter(max_requests=0)
    with pytest.raises(ValueError):
        RateLimiter(window_seconds=0)


def test_concurrent_admissions_never_exceed_limit(clock):
    limiter = RateLimiter(max_requests=5, window_seconds=900, clock=clock)
    admitted = []
    rejected = []
    barrier = threading.Barrier(20)

    def worker():
        barrier.wait()
        try:
            limiter.admit("198.51.100.7")
            admitted.append(1)
        except RateLimited:
            rejected.append(1)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(admitted) == 5
    assert len(rejected) == 15


# ──────────────────────────────────────────────────────────────────────────────
# Expiry and sweep
# ──────────────────────────────────────────────────────────────────────────────

def test_peek_hides_expired_window(limiter, clock):
    limiter.admit("198.51.100.7")
    clock.advance(900)
    assert limiter.peek("198.51.100.7") is None


def test_sweep_removes_only_expired_windows(limiter, clock):
    limiter.admit("198.51.100.7")
    clock.advance(600)
    limiter.admit("198.51.100.8")
    clock.advance(300)

    assert limiter.sweep() == 1
    assert limiter.active_clients() == 1
    assert limiter.peek("198.51.100.8").count == 1


def test_sweep_skips_window_being_updated(limiter, clock):
    limiter.admit("198.51.100.7")
    clock.advance(900)
    entry = limiter._windows["198.51.100.7"]
    with entry.lock:
        assert limiter.sweep() == 0
    assert limiter.sweep() == 1


def test_admit_after_sweep_creates_fresh_window(limiter, clock):
    for _ in range(5):
        limiter.admit("198.51.100.7")
    clock.advance(901)
    limiter.sweep()
    assert limiter.admit("198.51.100.7").count == 1


def test_reset_clears_single_client(limiter):
    for _ in range(5):
        limiter.admit("198.51.100.7")
    limiter.admit("198.51.100.8")
    limiter.reset("198.51.100.7")
    assert limiter.admit("198.51.100.7").count == 1
    assert limiter.peek("198.51.100.8").count == 1


def test_reset_all(limiter):
    limiter.admit("198.51.100.7")
    limiter.admit("198.51.100.8")
    limiter.reset_all()
    assert limiter.active_clients() == 0


def test_sweeper_start_stop(limiter):
    sweeper = WindowSweeper(limiter, interval_seconds=0.01)
    sweeper.start()
    sweeper.stop(timeout=1)
    assert sweeper._thread is None


# ──────────────────────────────────────────────────────────────────────────────
# Client key derivation
# ──────────────────────────────────────────────────────────────────────────────

def test_client_key_prefers_first_forwarded_for():
    source = ClientSource(
        headers={"X-Forwarded-For": "203.0.113.1, 10.0.0.1", "X-Real-IP": "203.0.113.9"},
        peer_address="10.0.0.5",
    )
    assert resolve_client_key(source) == "203.0.113.1"


def test_client_key_header_fallback_order():
    assert resolve_client_key(ClientSource(
        headers={"x-real-ip": "203.0.113.2", "x-client-ip": "203.0.113.3"},
    )) == "203.0.113.2"
    assert resolve_client_key(ClientSource(
        headers={"X-Client-IP": "203.0.113.3"}, peer_address="10.0.0.5",
    )) == "203.0.113.3"


def test_client_key_peer_then_unknown():
    assert resolve_client_key(ClientSource(peer_address="10.0.0.5")) == "10.0.0.5"
    assert resolve_client_key(ClientSource()) == UNKNOWN_CLIENT


def test_client_key_ignores_headers_when_untrusted():
    source = ClientSource(headers={"X-Forwarded-For": "203.0.113.1"}, peer_address="10.0.0.5")
    assert resolve_client_key(source, trust_forwarded_headers=False) == "10.0.0.5"
