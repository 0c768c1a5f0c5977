# et_utils/timeouts.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


def call_with_timeout(
    fn: Callable[..., T], timeout: Optional[float], *args: Any, **kwargs: Any
) -> T:
    """
    Run fn on a worker thread and wait at most `timeout` seconds.
    Raises TimeoutError when it takes longer; the worker is abandoned, not killed.
    A falsy timeout runs fn inline.
    """
    if not timeout:
        return fn(*args, **kwargs)
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="et-io")
    try:
        future = pool.submit(fn, *args, **kwargs)
        return future.result(timeout=timeout)
    finally:
        pool.shutdown(wait=False, cancel_futures=True)
