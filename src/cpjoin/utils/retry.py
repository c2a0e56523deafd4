# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import time
import functools
from typing import Callable


class RetryError(RuntimeError):
    pass


def retry(
    *,
    retries: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
    error: type[Exception] = RetryError,
):
    """
    Retry decorator for idempotent probes.

    retries: number of attempts (not retries after the first one)
    delay: seconds slept between attempts, never after the last one
    retry_on: exception types that count as a failed attempt
    on_retry: callback(attempt, exception), called after every failed attempt
    error: exception type raised once all attempts are used up
    """
    if retries < 1:
        raise ValueError(f"retries must be >= 1, got {retries}")

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    time.sleep(delay)
            raise error(f"{fn.__name__} failed after {retries} attempts: {last_exc}") from last_exc
        return wrapper
    return decorator
