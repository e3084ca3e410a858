"""General utility functions for retrying a function call."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")


def retry_call(
    retry_count: int,
    retry_exception_check: Callable[[Exception], bool] | None,
    func: Callable[P, R],
    *args: P.args,
    **kwargs: P.kwargs,
) -> R:
    """Retry a function call to allow for arbitrary RPC failures.

    Arguments
    ---------
    retry_count: int
        The number of times to try the function. Must be > 0.
    retry_exception_check: Callable[[Exception], bool] | None
        A function that takes as an argument an exception and returns True if we want to retry on that exception
        If None, will retry for all exceptions
    func: Callable[P, R]
        The function to call.
    *args: P.args
        The positional arguments to call func with
    **kwargs: P.kwargs
        The keyword arguments to call the func with

    Returns
    -------
    R
        Returns the value of the called function
    """
    if retry_count <= 0:
        raise ValueError("retry_count must be greater than zero.")
    exception = None
    for attempt_number in range(retry_count):
        try:
            out = func(*args, **kwargs)
            return out
        # Catching general exception but throwing if fails
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Raise exception immediately if exception check fails
            if retry_exception_check is not None and not retry_exception_check(exc):
                raise exc
            # Get caller of this function's name
            caller = inspect.stack()[1][3]
            logging.warning(
                "Retry attempt %s out of %s: Function %s called from %s failed with %s",
                attempt_number + 1,
                retry_count,
                func,
                caller,
                repr(exc),
            )
            exception = exc
            time.sleep(0.1)
    assert exception is not None
    raise exception


async def async_retry_call(
    retry_count: int,
    retry_exception_check: Callable[[Exception], bool] | None,
    func: Callable[P, Awaitable[R]],
    *args: P.args,
    **kwargs: P.kwargs,
) -> R:
    """Async version of `retry_call`, for coroutine functions.

    Waits between attempts without blocking the event loop. The last failure is raised
    once all attempts are used up.

    Arguments
    ---------
    retry_count: int
        The number of times to try the function. Must be > 0.
    retry_exception_check: Callable[[Exception], bool] | None
        Returns True for exceptions that should be retried. If None, will retry for all exceptions.
    func: Callable[P, Awaitable[R]]
        The coroutine function to call.
    *args: P.args
        The positional arguments to call func with
    **kwargs: P.kwargs
        The keyword arguments to call the func with

    Returns
    -------
    R
        Returns the value of the awaited function
    """
    if retry_count <= 0:
        raise ValueError("retry_count must be greater than zero.")
    exception = None
    for attempt_number in range(retry_count):
        try:
            return await func(*args, **kwargs)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            if retry_exception_check is not None and not retry_exception_check(exc):
                raise exc
            logging.warning(
                "Retry attempt %s out of %s: Function %s failed with %s",
                attempt_number + 1,
                retry_count,
                getattr(func, "__qualname__", func),
                repr(exc),
            )
            exception = exc
            if attempt_number + 1 < retry_count:
                await asyncio.sleep(0.1)
    assert exception is not None
    raise exception
