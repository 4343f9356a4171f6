import time

import pytest

from retrying_calls.options import (
    MAX_DURATION,
    MILLISECOND,
    SECOND,
    Config,
    Context,
    ContextCanceled,
    DeadlineExceeded,
    SleepTimer,
    attempts,
    attempts_for_error,
    back_off_delay,
    background,
    combine_delay,
    context,
    default_config,
    delay,
    delay_type,
    fixed_delay,
    last_error_only,
    max_delay,
    max_jitter,
    on_retry,
    random_delay,
    retry_if,
    until_succeeded,
    with_cancel,
    with_timeout,
    with_timer,
    wrap_context_error_with_last_error,
)


@pytest.mark.parametrize(
    "start_delay, expected_max_n, n, expected_delay",
    [
        (-1, 62, 2, 4),
        (0, 62, 65, 1 << 62),
        (SECOND, 33, 62, SECOND << 33),
    ],
    ids=["negative-delay", "zero-delay", "one-second"],
)
def test_back_off_delay(start_delay, expected_max_n, n, expected_delay):
    config = Config(delay=start_delay)
    result = back_off_delay(n, None, config)
    assert config.max_back_off_n == expected_max_n
    assert result == expected_delay


def test_back_off_delay_doubles():
    config = Config(delay=10)
    assert [back_off_delay(n, None, config) for n in range(4)] == [10, 20, 40, 80]


def _constant(value):
    return lambda n, error, config: value


@pytest.mark.parametrize(
    "delays, expected",
    [
        ([], 0),
        ([SECOND], SECOND),
        ([SECOND, -MILLISECOND], SECOND - MILLISECOND),
        ([MAX_DURATION, SECOND, MILLISECOND], MAX_DURATION),
    ],
    ids=["empty", "single", "negative", "overflow"],
)
def test_combine_delay(delays, expected):
    combined = combine_delay(*(_constant(d) for d in delays))
    assert combined(0, None, None) == expected


def test_fixed_delay_returns_configured_delay():
    config = Config(delay=42)
    assert fixed_delay(5, None, config) == 42


def test_random_delay_within_jitter():
    config = Config(max_jitter=50)
    values = [random_delay(0, None, config) for _ in range(200)]
    assert all(0 <= v < 50 for v in values)


def test_random_delay_zero_jitter_raises():
    with pytest.raises(ValueError):
        random_delay(0, None, Config(max_jitter=0))


def test_default_config_values():
    config = default_config()
    assert config.attempts == 10
    assert config.delay == 100 * MILLISECOND
    assert config.max_jitter == 100 * MILLISECOND
    assert config.max_delay == 0
    assert config.last_error_only is False
    assert config.retry_if is None
    assert config.attempts_for_error == {}
    assert config.wrap_context_error_with_last_error is False
    assert config.context.done() is False


def test_default_delay_type_combines_backoff_and_jitter():
    config = default_config()
    value = config.delay_type(1, None, config)
    assert 200 * MILLISECOND <= value < 300 * MILLISECOND


def test_options_set_fields():
    config = default_config()
    ctx = background()
    timer = SleepTimer()
    key = KeyError("x")
    for option in (
        attempts(3),
        attempts_for_error(2, key),
        delay(5),
        max_delay(7),
        max_jitter(9),
        last_error_only(True),
        context(ctx),
        with_timer(timer),
        wrap_context_error_with_last_error(True),
    ):
        option(config)
    assert config.attempts == 3
    assert config.attempts_for_error == {key: 2}
    assert config.delay == 5
    assert config.max_delay == 7
    assert config.max_jitter == 9
    assert config.last_error_only is True
    assert config.context is ctx
    assert config.timer is timer
    assert config.wrap_context_error_with_last_error is True


def test_until_succeeded_sets_zero_attempts():
    config = default_config()
    until_succeeded()(config)
    assert config.attempts == 0


def test_callable_options_set_fields():
    config = default_config()

    def predicate(error):
        return False

    def callback(n, error):
        pass

    delay_type(fixed_delay)(config)
    retry_if(predicate)(config)
    on_retry(callback)(config)
    assert config.delay_type is fixed_delay
    assert config.retry_if is predicate
    assert config.on_retry is callback


def test_none_callables_leave_config_unchanged():
    config = default_config()
    before = (config.delay_type, config.retry_if, config.on_retry)
    delay_type(None)(config)
    retry_if(None)(config)
    on_retry(None)(config)
    assert (config.delay_type, config.retry_if, config.on_retry) == before


def test_cancel_sets_default_cause():
    ctx = background()
    assert ctx.cause() is None
    ctx.cancel()
    assert isinstance(ctx.cause(), ContextCanceled)
    assert str(ctx.cause()) == "context canceled"
    assert ctx.done() is True


def test_cancel_keeps_first_cause():
    ctx = background()
    first = ValueError("first")
    ctx.cancel(first)
    ctx.cancel(ValueError("second"))
    assert ctx.cause() is first


def test_cancel_propagates_to_children():
    parent = background()
    child = with_cancel(parent)
    grandchild = with_cancel(child)
    cause = RuntimeError("stop")
    parent.cancel(cause)
    assert child.cause() is cause
    assert grandchild.cause() is cause


def test_child_cancel_does_not_affect_parent():
    parent = background()
    child = with_cancel(parent)
    child.cancel()
    assert child.done() is True
    assert parent.done() is False


def test_child_of_cancelled_parent_is_done():
    parent = background()
    parent.cancel()
    child = with_cancel(parent)
    assert child.done() is True
    assert str(child.cause()) == "context canceled"
    assert isinstance(child.cause(), ContextCanceled)


def test_with_timeout_expires():
    ctx = with_timeout(background(), 20 * MILLISECOND)
    assert ctx.done() is False
    assert ctx.wait() is True
    assert isinstance(ctx.cause(), DeadlineExceeded)
    assert str(ctx.cause()) == "context deadline exceeded"


def test_child_inherits_parent_deadline():
    parent = with_timeout(background(), 10 * MILLISECOND)
    child = with_cancel(parent)
    assert child.wait(SECOND) is True
    assert isinstance(child.cause(), DeadlineExceeded)


def test_wait_times_out_on_live_context():
    ctx = Context()
    start = time.monotonic()
    assert ctx.wait(10 * MILLISECOND) is False
    assert time.monotonic() - start >= 0.009


def test_sleep_timer_sleeps_full_duration():
    start = time.monotonic()
    assert SleepTimer().sleep(20 * MILLISECOND, background()) is True
    assert time.monotonic() - start >= 0.019


def test_sleep_timer_stops_on_cancelled_context():
    ctx = background()
    ctx.cancel()
    start = time.monotonic()
    assert SleepTimer().sleep(10 * SECOND, ctx) is False
    assert time.monotonic() - start < 1.0