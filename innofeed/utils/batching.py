"""Bounded batch execution with per-item failure isolation."""
import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar, Union

T = TypeVar("T")
R = TypeVar("R")

Outcome = Union[R, BaseException]


async def run_in_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Callable[[T], Awaitable[R]],
    pause_seconds: float = 0.0,
    is_fatal: Optional[Callable[[BaseException], bool]] = None,
) -> List[Tuple[T, Outcome]]:
    """
    Run ``worker`` over ``items`` in sequential batches of concurrent calls.

    Batch N+1 starts only after every call of batch N has settled. A failing
    call is returned as its exception next to the item instead of cancelling
    its siblings. If ``is_fatal`` accepts one of a batch's exceptions, that
    exception is raised once the batch has settled and no further batch runs.
    ``pause_seconds`` is slept between batches, not after the last.
    """
    outcomes: List[Tuple[T, Outcome]] = []
    batch_size = max(1, batch_size)

    for start in range(0, len(items), batch_size):
        if start and pause_seconds > 0:
            await asyncio.sleep(pause_seconds)

        batch = items[start:start + batch_size]
        results = await asyncio.gather(
            *[worker(item) for item in batch],
            return_exceptions=True,
        )
        outcomes.extend(zip(batch, results))

        if is_fatal is not None:
            for result in results:
                if isinstance(result, BaseException) and is_fatal(result):
                    raise result

    return outcomes
