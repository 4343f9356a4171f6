"""Running a callable again and again until it succeeds.

A call fails by raising an exception. The retry loop is tuned by the
options in :mod:`retrying_calls.options`.
"""

from __future__ import annotations

from typing import Callable, Iterator, Optional, TypeVar

from .options import Config, ContextCanceled, default_config

T = TypeVar("T")


class RetryError(Exception):
    """Every error collected while retrying, one per failed attempt."""

    def __init__(self, errors) -> None:
        self.errors: list = list(errors)
        super().__init__(*self.errors)

    def __str__(self) -> str:
        lines = [
            "" if error is None else f"#{number}: {error}"
            for number, error in enumerate(self.errors, 1)
        ]
        return "All attempts fail:\n" + "\n".join(lines)

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self) -> Iterator[Optional[BaseException]]:
        return iter(self.errors)

    def __bool__(self) -> bool:
        return True

    def unwrap(self) -> Optional[BaseException]:
        """Return the last error."""
        return self.errors[-1]

    def wrapped_errors(self) -> list:
        """Return all the collected errors, oldest first."""
        return list(self.errors)

    def matches(self, target) -> bool:
        """Tell whether any collected error is, or wraps, ``target``.

        ``target`` may be an exception instance or an exception class.
        """
        return any(_matches(error, target) for error in self.errors)

    def find(self, error_type: type) -> Optional[BaseException]:
        """Return the first collected error of ``error_type``, looking into wrapped ones."""
        for error in self.errors:
            for candidate in _chain(error):
                if isinstance(candidate, error_type):
                    return candidate
        return None


class UnrecoverableError(Exception):
    """Marks an error that must not be retried."""

    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        super().__init__(*(() if error is None else (error,)))

    def __str__(self) -> str:
        if self.error is None:
            return "unrecoverable error"
        return str(self.error)

    def unwrap(self) -> Optional[BaseException]:
        """Return the wrapped error."""
        return self.error


def unrecoverable(error: Optional[BaseException]) -> UnrecoverableError:
    """Wrap ``error`` so that the retry loop stops at it."""
    return UnrecoverableError(error)


def _chain(error: Optional[BaseException]) -> Iterator[BaseException]:
    """Yield ``error`` and every error it wraps."""
    seen: set = set()
    stack = [error]
    while stack:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        if isinstance(current, RetryError):
            stack.extend(reversed(current.errors))
        elif isinstance(current, UnrecoverableError):
            stack.append(current.error)
        elif current.__cause__ is not None:
            stack.append(current.__cause__)


def _matches(error: Optional[BaseException], target) -> bool:
    for candidate in _chain(error):
        if isinstance(target, type):
            if isinstance(candidate, target):
                return True
        elif candidate is target or candidate == target:
            return True
    return False


def is_recoverable(error: Optional[BaseException]) -> bool:
    """Tell whether ``error`` is free of any unrecoverable marker."""
    return not any(isinstance(c, UnrecoverableError) for c in _chain(error))


def _unpack_unrecoverable(error: BaseException) -> Optional[BaseException]:
    if isinstance(error, UnrecoverableError):
        return error.error
    return error


def _delay(config: Config, n: int, error: BaseException) -> int:
    duration = config.delay_type(n, error, config)
    if config.max_delay > 0 and duration > config.max_delay:
        duration = config.max_delay
    return duration


def _context_cause(config: Config) -> BaseException:
    cause = config.context.cause()
    return ContextCanceled() if cause is None else cause


def do(func: Callable[[], object], *args) -> None:
    """Call ``func`` until it stops raising, as configured by the options in ``args``."""
    do_with_data(func, *args)


def do_with_data(func: Callable[[], T], *args) -> T:
    """Call ``func`` until it stops raising and return its result.

    ``args`` are options applied to the default configuration. When
    retrying gives up, the collected errors are raised as a
    :class:`RetryError`, or the last error alone with ``last_error_only``.
    """
    config = default_config()
    for option in args:
        option(config)
    should_retry_error = config.retry_if or is_recoverable

    cause = config.context.cause()
    if cause is not None:
        raise cause

    if config.attempts == 0:
        return _retry_until_succeeded(func, config, should_retry_error)

    error_log: list = []
    remaining = dict(config.attempts_for_error)
    n = 0
    should_retry = True
    while should_retry:
        try:
            return func()
        except Exception as exc:
            error = exc

        error_log.append(_unpack_unrecoverable(error))
        if not should_retry_error(error):
            break

        config.on_retry(n, error)

        for target, count in remaining.items():
            if _matches(error, target):
                remaining[target] = count - 1
                should_retry = should_retry and count - 1 > 0

        # The last attempt does not wait.
        if n == config.attempts - 1:
            break
        n += 1
        if not config.timer.sleep(_delay(config, n, error), config.context):
            cause = _context_cause(config)
            if config.last_error_only:
                raise cause
            raise RetryError([*error_log, cause])

        should_retry = should_retry and n < config.attempts

    if config.last_error_only:
        raise error_log[-1]
    raise RetryError(error_log)


def _retry_until_succeeded(
    func: Callable[[], T], config: Config, should_retry_error: Callable
) -> T:
    n = 0
    while True:
        try:
            return func()
        except Exception as exc:
            error = exc

        if not is_recoverable(error) or not should_retry_error(error):
            raise error

        config.on_retry(n, error)
        n += 1
        if not config.timer.sleep(_delay(config, n, error), config.context):
            cause = _context_cause(config)
            if config.wrap_context_error_with_last_error:
                raise RetryError([cause, error])
            raise cause