"""
Bounded exponential backoff for oracle calls.
"""
import threading
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from policybot.core.logging import get_logger

logger = get_logger(__name__)


T = TypeVar("T")


class BackoffPolicy:
    """
    Retry a callable with exponential backoff.

    Attempt 0 runs immediately; attempt k (k >= 1) waits
    ``base_delay * 2 ** (k - 1)`` seconds first, so the defaults wait
    2, 4, 8, 16 and 32 seconds. No jitter is applied. When the retries are
    exhausted, the exception from the last attempt is re-raised as-is.
    """

    def __init__(
        self,
        max_retries: int = 5,
        base_delay: float = 2.0,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Optional[Callable[[float], None]] = None,
    ):
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.retry_on = retry_on
        self.sleep = sleep or time.sleep

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before the given attempt."""
        if attempt <= 0:
            return 0.0
        return self.base_delay * 2 ** (attempt - 1)

    def call(
        self,
        func: Callable[..., T],
        *args,
        cancel_event: Optional[threading.Event] = None,
        **kwargs,
    ) -> T:
        """
        Run ``func`` until it succeeds or the retries run out.

        Args:
            func: Callable to invoke
            cancel_event: Optional signal checked between attempts; once set,
                the last error is raised instead of waiting for another attempt
        """
        name = getattr(func, "__qualname__", repr(func))

        for attempt in range(self.max_retries + 1):
            try:
                return func(*args, **kwargs)
            except self.retry_on as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"{name} failed after {self.max_retries + 1} attempts: {e}"
                    )
                    raise

                delay = self.delay_for(attempt + 1)
                logger.warning(
                    f"{name} failed (attempt {attempt + 1}/{self.max_retries + 1}): {e}. "
                    f"Retrying in {delay:.1f}s..."
                )

                if cancel_event is not None:
                    if cancel_event.is_set() or cancel_event.wait(delay):
                        logger.warning(f"{name} retry loop cancelled")
                        raise
                else:
                    self.sleep(delay)

        # max_retries >= 0 guarantees the loop either returns or raises
        raise RuntimeError("unreachable")

