# photodrop/infra/retry.py
import random
import time
from typing import Callable, Optional, TypeVar

import structlog

T = TypeVar("T")
logger = structlog.get_logger(__name__)


def _sleep_with_jitter(base: float, factor: float, attempt: int, cap: float) -> float:
    # exponential backoff with jitter
    delay = min(base * (factor ** attempt), cap)
    jitter = random.uniform(0, delay * 0.25)
    return delay + jitter


def retry_on(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    base: float = 0.2,
    factor: float = 2.0,
    cap: float = 2.0,
    is_retryable: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    last_exc: Optional[Exception] = None
    for i in range(max(attempts, 1)):
        try:
            return fn()
        except Exception as e:
            if is_retryable and not is_retryable(e):
                raise
            last_exc = e
            if i == attempts - 1:
                break
            sleep_s = _sleep_with_jitter(base, factor, i, cap)
            if on_retry:
                on_retry(i + 1, e, sleep_s)
            else:
                logger.warning("retry", attempt=i + 1, sleep_s=round(sleep_s, 2), error=repr(e))
            sleep(sleep_s)
    assert last_exc is not None
    raise last_exc
