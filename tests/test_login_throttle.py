import pytest

from lms.errors import RateLimitError
from lms.services.login_throttle import LoginThrottle

KEY = LoginThrottle.key_for("  Siswa@Sekolah.ID ")


def make(clock):
    return LoginThrottle(max_attempts=5, lock_seconds=600, clock=clock)


def test_key_is_normalised():
    assert KEY == "login:siswa@sekolah.id"


def test_four_failures_do_not_lock(clock):
    throttle = make(clock)
    for _ in range(4):
        throttle.record_failure(KEY)
    throttle.check(KEY)
    assert throttle.peek(KEY).failures == 4


def test_fifth_failure_locks_for_ten_minutes(clock):
    throttle = make(clock)
    for _ in range(5):
        throttle.record_failure(KEY)

    bucket = throttle.peek(KEY)
    assert bucket.failures == 0
    assert bucket.locked_until == clock.now + 600

    clock.advance(1)
    with pytest.raises(RateLimitError) as exc:
        throttle.check(KEY)
    assert exc.value.status_code == 429
    assert exc.value.retry_after == 599
    assert exc.value.headers["Retry-After"] == "599"


def test_rejected_check_does_not_change_state(clock):
    throttle = make(clock)
    for _ in range(5):
        throttle.record_failure(KEY)
    before = (throttle.peek(KEY).failures, throttle.peek(KEY).locked_until)

    for _ in range(3):
        with pytest.raises(RateLimitError):
            throttle.check(KEY)

    assert (throttle.peek(KEY).failures, throttle.peek(KEY).locked_until) == before


def test_failure_after_expiry_counts_as_one(clock):
    throttle = make(clock)
    for _ in range(5):
        throttle.record_failure(KEY)

    clock.advance(600)
    throttle.check(KEY)
    bucket = throttle.record_failure(KEY)
    assert bucket.failures == 1
    assert bucket.locked_until == 0


def test_remaining_seconds_round_up(clock):
    throttle = make(clock)
    for _ in range(5):
        throttle.record_failure(KEY)
    clock.advance(0.25)
    assert throttle.remaining_lock(KEY) == 600


def test_reset_forgets_the_key(clock):
    throttle = make(clock)
    throttle.record_failure(KEY)
    throttle.reset(KEY)
    assert throttle.peek(KEY) is None
    assert throttle.remaining_lock(KEY) is None


def test_keys_are_independent(clock):
    throttle = make(clock)
    other = LoginThrottle.key_for("guru@sekolah.id")
    for _ in range(5):
        throttle.record_failure(KEY)
    throttle.check(other)
    with pytest.raises(RateLimitError):
        throttle.check(KEY)


def test_stale_buckets_are_swept(clock):
    throttle = make(clock)
    dikunci = LoginThrottle.key_for("dikunci@sekolah.id")
    lupa = LoginThrottle.key_for("lupa@sekolah.id")
    for _ in range(5):
        throttle.record_failure(dikunci)
    for _ in range(2):
        throttle.record_failure(lupa)

    clock.advance(600)
    throttle.record_failure(KEY)
    assert throttle.peek(dikunci) is None
    assert throttle.peek(lupa) is None
    assert throttle.peek(KEY).failures == 1


def test_recent_failures_survive_the_sweep(clock):
    throttle = make(clock)
    other = LoginThrottle.key_for("guru@sekolah.id")
    for _ in range(3):
        throttle.record_failure(KEY)

    clock.advance(599)
    throttle.record_failure(other)
    assert throttle.peek(KEY).failures == 3

    throttle.record_failure(KEY)
    throttle.record_failure(KEY)
    with pytest.raises(RateLimitError):
        throttle.check(KEY)


def test_idle_count_restarts_after_lock_window(clock):
    throttle = make(clock)
    for _ in range(4):
        throttle.record_failure(KEY)

    clock.advance(600)
    assert throttle.record_failure(KEY).failures == 1
    throttle.check(KEY)
