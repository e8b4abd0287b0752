"""Retry-with-backoff combinator shared by collectors and the generation service."""
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")

ErrorCallback = Callable[[BaseException, int], None]


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    on_error: Optional[ErrorCallback] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """
    Await ``fn()`` until it succeeds or ``attempts`` are exhausted.

    The delay before attempt ``n + 1`` is ``min(base_delay * 2 ** (n - 1), max_delay)``.
    ``on_error(exc, attempt)`` is called for every failed attempt. Exceptions not in
    ``retry_on`` propagate immediately; the last exception is re-raised on exhaustion.
    """
    def _after(retry_state: RetryCallState) -> None:
        if on_error is not None:
            on_error(retry_state.outcome.exception(), retry_state.attempt_number)

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, max=max_delay),
        retry=retry_if_exception_type(retry_on),
        after=_after,
        reraise=True,
    ):
        with attempt:
            return await fn()
