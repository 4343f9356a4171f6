# retrying-calls

A small library that calls a function again when it raises. It supports a
bounded or unbounded number of attempts, exponential back-off with random
jitter, per-error attempt limits, and cancellation through a context.

It has no dependencies beyond the standard library.

## Installation

```
pip install retrying-calls
```

## Basic use

A call counts as failed when it raises an `Exception`.

```python
from retrying_calls import options
from retrying_calls.options import MILLISECOND
from retrying_calls.retry import RetryError, do, do_with_data

def fetch():
    ...  # raise an exception on failure

try:
    do(fetch, options.attempts(3), options.delay(200 * MILLISECOND))
except RetryError as err:
    print(err)              # "All attempts fail:\n#1: ...\n#2: ...\n#3: ..."
    print(err.unwrap())     # the last error
```

`do_with_data` works the same way and returns the function's result:

```python
body = do_with_data(lambda: download("data.bin"), options.attempts(5))
```

## Durations

All durations are integers counted in **nanoseconds**. The module
`retrying_calls.options` provides the unit constants `NANOSECOND`,
`MICROSECOND`, `MILLISECOND` and `SECOND`, and `MAX_DURATION`
(`2**63 - 1`), the largest delay a strategy produces.

## Options

All options live in `retrying_calls.options`. Each one returns a callable
that is applied to a `Config`; `default_config()` returns a `Config` holding
the defaults.

| Option | Effect | Default |
| --- | --- | --- |
| `attempts(count)` | number of calls; `0` retries until success | 10 |
| `until_succeeded()` | same as `attempts(0)` | |
| `attempts_for_error(count, error)` | limit on calls that fail with `error` (an exception instance or class); these also count against the total | |
| `delay(duration)` | base delay between calls | `100 * MILLISECOND` |
| `max_delay(duration)` | upper bound on any single delay; `0` means no bound | `0` |
| `max_jitter(duration)` | upper bound for `random_delay` | `100 * MILLISECOND` |
| `delay_type(func)` | delay strategy; `None` leaves it unchanged | back-off plus jitter |
| `on_retry(callback)` | called as `callback(n, error)` before each retry, `n` counting from 0 | does nothing |
| `retry_if(predicate)` | decides whether an error is worth retrying | `is_recoverable` |
| `last_error_only(value)` | raise only the last error instead of a `RetryError` | `False` |
| `context(ctx)` | a context whose end stops the waiting | a fresh background context |
| `with_timer(timer)` | replace the object that performs the waits | `SleepTimer()` |
| `wrap_context_error_with_last_error(value)` | with `attempts(0)`, raise the context error together with the last call error | `False` |

### Delay strategies

- `back_off_delay` doubles `config.delay` on each attempt (`delay << n`),
  limiting the shift so the result never exceeds a signed 64-bit value. A
  delay of zero or less is treated as one nanosecond.
- `fixed_delay` returns `config.delay` every time.
- `random_delay` returns a random value in `[0, config.max_jitter)`.
- `combine_delay(*strategies)` adds several strategies together, capped at
  `MAX_DURATION`.

A custom strategy is any callable `(n, error, config) -> nanoseconds`. The
result is clamped to `max_delay` when that is set.

```python
def delay_from_error(n, error, config):
    if isinstance(error, RateLimited):
        return error.retry_after
    return options.back_off_delay(n, error, config)

do(call, options.delay_type(delay_from_error))
```

## What is raised

With a limited number of attempts (the default):

- when attempts run out, or `retry_if` rejects an error, a `RetryError`
  holding one error per failed call is raised;
- with `last_error_only(True)` the last error is raised on its own instead;
- if the context ends during a wait, a `RetryError` holding the errors so
  far followed by the context's cause is raised, or, with
  `last_error_only(True)`, the cause alone.

With `attempts(0)`:

- an error that is unrecoverable or rejected by `retry_if` is raised as it is;
- if the context ends during a wait, the context's cause is raised, or, with
  `wrap_context_error_with_last_error(True)`, a `RetryError` holding the
  cause and the last call error.

If the context has already ended before the first call, its cause is raised
and the function is not called.

## Stopping early

Wrap an error with `unrecoverable(error)` to stop at once:

```python
from retrying_calls.retry import unrecoverable

def call():
    raise unrecoverable(ValueError("bad input"))
```

The error collected in the `RetryError` is the wrapped one, not the
`UnrecoverableError` around it. `is_recoverable(error)` tells whether an
error, anything it was raised from (`raise ... from ...`), or any error
collected inside a `RetryError` carries that mark.

## Cancellation

Contexts live in `retrying_calls.options`:

```python
ctx = options.with_cancel(options.background())
# ctx.cancel() from another thread or callback stops the retries
do(call, options.context(ctx), options.until_succeeded())
```

- `background()` returns a context that ends only when cancelled.
- `with_cancel(parent)` returns a child that ends when cancelled or when its
  parent ends.
- `with_timeout(parent, timeout)` returns a child that also ends
  `timeout` nanoseconds from now, with cause `DeadlineExceeded`.
- `Context.cancel(cause=None)` ends the context and its children; without a
  cause it uses `ContextCanceled`.
- `Context.cause()`, `Context.done()` and `Context.wait(timeout)` report and
  wait for the end.

## Timers

A timer is any object with `sleep(duration, context) -> bool` that returns
`True` if the full wait passed and `False` if the context ended first.
`SleepTimer` blocks the calling thread. A different timer, passed with
`with_timer`, can record or skip waits in tests.

## Inspecting errors

`RetryError` supports `len()` and iteration over the collected errors.
`wrapped_errors()` returns them as a list, oldest first; `unwrap()` returns
the last one; `matches(target)` reports whether one of them is, or wraps,
the given exception instance or class; and `find(error_type)` returns the
first one of the given type, or `None`.

## What this package does not do

It offers no asynchronous variant: waits block the calling thread. It has
no command-line interface.

## Running the tests

```
pip install -e ".[test]"
pytest
```