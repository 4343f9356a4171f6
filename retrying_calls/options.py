"""Retry configuration, delay strategies and cancellable contexts.

Durations are integers counted in nanoseconds; use the unit constants
(``MILLISECOND``, ``SECOND`` and so on) to build them.
"""

from __future__ import annotations

import random
import threading
import time
import weakref
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

NANOSECOND = 1
MICROSECOND = 1_000 * NANOSECOND
MILLISECOND = 1_000 * MICROSECOND
SECOND = 1_000 * MILLISECOND

MAX_DURATION = 2**63 - 1

# Shifting past 62 would overflow a signed 64-bit duration.
_MAX_SHIFT = 62


class ContextCanceled(Exception):
    """The context was cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(Exception):
    """The context's deadline passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """A cancellation signal, optionally bound to a deadline and a parent."""

    def __init__(
        self, parent: Optional[Context] = None, deadline: Optional[int] = None
    ) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._cause: Optional[BaseException] = None
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()
        deadlines = [d for d in (deadline, parent and parent._deadline) if d is not None]
        self._deadline: Optional[int] = min(deadlines) if deadlines else None
        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: Context) -> None:
        with self._lock:
            cause = self._cause
            if cause is None:
                self._children.add(child)
        if cause is not None:
            child.cancel(cause)

    def cancel(self, cause: Optional[BaseException] = None) -> None:
        """Cancel this context and its children; later calls do nothing."""
        with self._lock:
            if self._cause is not None:
                return
            self._cause = cause if cause is not None else ContextCanceled()
            children = list(self._children)
            self._children.clear()
            self._event.set()
        for child in children:
            child.cancel(self._cause)

    def cause(self) -> Optional[BaseException]:
        """Return why the context finished, or None while it is still live."""
        if self._cause is None and self._deadline is not None:
            if time.monotonic_ns() >= self._deadline:
                self.cancel(DeadlineExceeded())
        return self._cause

    def done(self) -> bool:
        """Tell whether the context has finished."""
        return self.cause() is not None

    def wait(self, timeout: Optional[int] = None) -> bool:
        """Wait up to ``timeout`` nanoseconds (forever if None) for the context to finish.

        Returns True if the context finished.
        """
        end = None if timeout is None else time.monotonic_ns() + max(timeout, 0)
        while not self.done():
            limits = [t for t in (end, self._deadline) if t is not None]
            if not limits:
                self._event.wait()
                continue
            remaining = min(limits) - time.monotonic_ns()
            if remaining <= 0:
                return self.done()
            self._event.wait(remaining / SECOND)
        return True


def background() -> Context:
    """Return a fresh context that never finishes unless cancelled."""
    return Context()


def with_cancel(parent: Context) -> Context:
    """Return a child context that finishes when cancelled or when ``parent`` does."""
    return Context(parent)


def with_timeout(parent: Context, timeout: int) -> Context:
    """Return a child context that finishes after ``timeout`` nanoseconds at the latest."""
    return Context(parent, deadline=time.monotonic_ns() + timeout)


class Timer(Protocol):
    def sleep(self, duration: int, context: Context) -> bool: ...


class SleepTimer:
    """Timer that blocks the calling thread."""

    def sleep(self, duration: int, context: Context) -> bool:
        """Wait ``duration`` nanoseconds; return False if ``context`` finished first."""
        return not context.wait(max(duration, 0))


RetryIfFunc = Callable[[BaseException], bool]
OnRetryFunc = Callable[[int, BaseException], None]
DelayFunc = Callable[[int, Optional[BaseException], "Config"], int]
Option = Callable[["Config"], None]


def _no_retry_callback(n: int, error: BaseException) -> None:
    pass


def fixed_delay(n: int, error: Optional[BaseException], config: Config) -> int:
    """Keep the delay the same on every attempt."""
    return config.delay


def back_off_delay(n: int, error: Optional[BaseException], config: Config) -> int:
    """Double the delay on each consecutive attempt, without overflowing."""
    if config.max_back_off_n == 0:
        if config.delay <= 0:
            config.delay = 1
        config.max_back_off_n = _MAX_SHIFT - (config.delay.bit_length() - 1)
    return config.delay << min(n, config.max_back_off_n)


def random_delay(n: int, error: Optional[BaseException], config: Config) -> int:
    """Pick a random delay below ``config.max_jitter``."""
    return random.randrange(config.max_jitter)


def combine_delay(*delays: DelayFunc) -> DelayFunc:
    """Build a delay function that sums the given ones, capped at ``MAX_DURATION``."""

    def combined(n: int, error: Optional[BaseException], config: Config) -> int:
        total = 0
        for delay_func in delays:
            total = min(total + delay_func(n, error, config), MAX_DURATION)
        return total

    return combined


@dataclass
class Config:
    """Settings of one retry run; the field defaults are the library defaults.

    A ``retry_if`` of None retries every error that is recoverable.
    """

    attempts: int = 10
    attempts_for_error: dict = field(default_factory=dict)
    delay: int = 100 * MILLISECOND
    max_delay: int = 0
    max_jitter: int = 100 * MILLISECOND
    on_retry: OnRetryFunc = _no_retry_callback
    retry_if: Optional[RetryIfFunc] = None
    delay_type: DelayFunc = field(
        default_factory=lambda: combine_delay(back_off_delay, random_delay)
    )
    last_error_only: bool = False
    context: Context = field(default_factory=background)
    timer: Timer = field(default_factory=SleepTimer)
    wrap_context_error_with_last_error: bool = False
    max_back_off_n: int = 0


def default_config() -> Config:
    """Return a configuration holding the defaults."""
    return Config()


def _empty_option(config: Config) -> None:
    pass


def last_error_only(value: bool) -> Option:
    """Report only the last error instead of every attempt's error."""

    def apply(config: Config) -> None:
        config.last_error_only = value

    return apply


def attempts(count: int) -> Option:
    """Set the number of attempts; 0 retries until the call succeeds."""

    def apply(config: Config) -> None:
        config.attempts = count

    return apply


def until_succeeded() -> Option:
    """Retry until the call succeeds; the same as ``attempts(0)``."""
    return attempts(0)


def attempts_for_error(count: int, error: object) -> Option:
    """Limit the attempts made when the call fails with ``error``.

    These attempts also count against the total; retrying stops as soon
    as any limit is used up.
    """

    def apply(config: Config) -> None:
        config.attempts_for_error[error] = count

    return apply


def delay(duration: int) -> Option:
    """Set the base delay between attempts."""

    def apply(config: Config) -> None:
        config.delay = duration

    return apply


def max_delay(duration: int) -> Option:
    """Cap the delay between attempts; 0 means no cap."""

    def apply(config: Config) -> None:
        config.max_delay = duration

    return apply


def max_jitter(duration: int) -> Option:
    """Set the upper bound used by ``random_delay``."""

    def apply(config: Config) -> None:
        config.max_jitter = duration

    return apply


def delay_type(func: Optional[DelayFunc]) -> Option:
    """Set the delay strategy; None leaves it unchanged."""
    if func is None:
        return _empty_option

    def apply(config: Config) -> None:
        config.delay_type = func

    return apply


def on_retry(callback: Optional[OnRetryFunc]) -> Option:
    """Call ``callback(attempt, error)`` before each retry; None leaves it unchanged."""
    if callback is None:
        return _empty_option

    def apply(config: Config) -> None:
        config.on_retry = callback

    return apply


def retry_if(predicate: Optional[RetryIfFunc]) -> Option:
    """Retry only errors for which ``predicate`` holds; None leaves it unchanged."""
    if predicate is None:
        return _empty_option

    def apply(config: Config) -> None:
        config.retry_if = predicate

    return apply


def context(ctx: Context) -> Option:
    """Stop retrying once ``ctx`` finishes."""

    def apply(config: Config) -> None:
        config.context = ctx

    return apply


def with_timer(timer: Timer) -> Option:
    """Replace the timer that waits between attempts."""

    def apply(config: Config) -> None:
        config.timer = timer

    return apply


def wrap_context_error_with_last_error(value: bool) -> Option:
    """With unlimited attempts, report the context error together with the last call error."""

    def apply(config: Config) -> None:
        config.wrap_context_error_with_last_error = value

    return apply