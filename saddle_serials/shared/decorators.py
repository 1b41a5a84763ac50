import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from loguru import logger

P = ParamSpec("P")
R = TypeVar("R")


def log_errors(func: Callable[P, R]) -> Callable[P, R]:
    """Log any exception raised by the decorated callable, then re-raise it.

    The line carries the qualified name plus exception type and message, which
    is enough to tell a Shopify failure from a database one in the sync logs.

    Usage::

        @log_errors
        def fetch_page(self, cursor: str | None) -> OrderPage: ...
    """

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            logger.error(f"[{func.__qualname__}] {type(exc).__name__}: {exc}")
            raise

    return wrapper


def log_duration(func: Callable[P, R]) -> Callable[P, R]:
    """Log how long the decorated call took, whether it returned or raised."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        started = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed = time.perf_counter() - started
            logger.debug(f"[{func.__qualname__}] finished in {elapsed:.2f}s")

    return wrapper
