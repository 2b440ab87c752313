"""
Tests for the failed-login limiter.
"""
import threading

from albumhq.login_rate_limit import (
    STALE_ENTRY_SECONDS,
    LoginRateLimiter,
    build_login_keys,
    extract_client_ip,
    normalize_username,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _limiter(clock):
    return LoginRateLimiter(max_failures=3, window_seconds=120, block_seconds=300, clock=clock)


class TestKeys:
    def test_normalize_username(self):
        assert normalize_username("  Alice ") == "alice"

    def test_keys(self):
        assert build_login_keys("Alice", "1.2.3.4") == ["user:alice", "user-ip:alice:1.2.3.4"]

    def test_client_ip_prefers_forwarded_for(self):
        headers = {"x-forwarded-for": "9.9.9.9, 10.0.0.1", "x-real-ip": "8.8.8.8"}
        assert extract_client_ip(headers, "127.0.0.1") == "9.9.9.9"
        assert extract_client_ip({"x-real-ip": "8.8.8.8"}, "127.0.0.1") == "8.8.8.8"
        assert extract_client_ip({}, "127.0.0.1") == "127.0.0.1"
        assert extract_client_ip({}) == "unknown"


class TestLoginRateLimiter:
    def test_blocks_after_max_failures(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        keys = build_login_keys("alice", "1.2.3.4")

        for _ in range(2):
            limiter.record_failure(keys)
        assert not limiter.check(keys).blocked

        limiter.record_failure(keys)
        decision = limiter.check(keys)
        assert decision.blocked
        assert decision.retry_after_seconds == 300

        clock.now += 299.5
        assert limiter.check(keys).retry_after_seconds == 1

        clock.now += 1
        assert not limiter.check(keys).blocked

    def test_window_resets_count(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        keys = ["user:alice"]

        limiter.record_failure(keys)
        limiter.record_failure(keys)
        clock.now += 121
        limiter.record_failure(keys)
        assert not limiter.check(keys).blocked

    def test_clear(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        keys = ["user:alice"]
        for _ in range(3):
            limiter.record_failure(keys)

        limiter.clear(keys)
        assert not limiter.check(keys).blocked
        assert len(limiter) == 0

    def test_stale_entries_are_pruned(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        limiter.record_failure(["user:alice"])
        assert len(limiter) == 1

        clock.now += 60 * 60 + 61
        limiter.check(["user:bob"])
        assert len(limiter) == 0


class TestConcurrentLogins:
    def test_state_is_touched_under_the_lock(self):
        seen = []

        def clock():
            seen.append(limiter._lock.locked())
            return 1000.0 + len(seen) * STALE_ENTRY_SECONDS

        limiter = LoginRateLimiter(clock=clock)
        limiter.record_failure(["user:alice"])
        limiter.check(["user:alice"])
        assert seen == [True, True]

    def test_threads_clearing_while_pruning(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        keys = [f"user:u{i}" for i in range(50)]
        errors = []

        def hammer(step):
            try:
                for _ in range(200):
                    # Every call is an hour later, so each one prunes everything stale
                    clock.now += STALE_ENTRY_SECONDS + 61
                    if step % 2:
                        limiter.record_failure(keys)
                        limiter.check(keys)
                    else:
                        limiter.clear(keys)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=hammer, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
