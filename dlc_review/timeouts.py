"""Deadline enforcement for external calls (model invocations, store queries)."""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from typing import Callable, Optional, Type, TypeVar

from dlc_review.errors import OperationTimeout

T = TypeVar("T")


def call_with_timeout(
    fn: Callable[[], T],
    timeout: Optional[float],
    timeout_exc: Type[OperationTimeout] = OperationTimeout,
    description: str = "external call",
) -> T:
    """
    Run fn() and raise timeout_exc if it does not return within timeout seconds.

    The worker thread cannot be killed; on timeout it is abandoned and its
    result discarded. Exceptions raised by fn propagate unchanged.
    """
    if not timeout or timeout <= 0:
        return fn()

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dlc-call")
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeout:
        future.cancel()
        raise timeout_exc(f"{description} exceeded {timeout:g}s")
    finally:
        executor.shutdown(wait=False)
