import logging
from typing import Callable, TypeVar

from .errors import StoreTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(operation: Callable[..., T], *args, retries: int = 1, **kwargs) -> T:
    """Call a store operation, retrying at most once after a transient timeout.

    Any other store error propagates on the first failure.
    """
    retries = max(0, min(retries, 1))
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation(*args, **kwargs)
        except StoreTimeoutError as e:
            if attempt > retries:
                raise
            logger.warning("Transient store failure in %s (attempt %d): %s; retrying",
                           getattr(operation, "__name__", operation), attempt, e)
