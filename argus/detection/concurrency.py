"""
Per-item isolation for evaluation ticks.

Every tick (anomaly detection, rule evaluation, threat correlation) fans out
over independent items. A failing item is wrapped in EvaluationError, logged
and reported; the remaining items still run.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Iterable, List, TypeVar

import structlog

from argus.errors import EvaluationError

logger = structlog.get_logger(__name__)


T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TickResult(Generic[R]):
    """
    Outcome of one tick.

    Attributes:
        results: Return values of the items that succeeded.
        errors: Wrapped failures, one per failing item.
    """

    results: List[R] = field(default_factory=list)
    errors: List[EvaluationError] = field(default_factory=list)


async def run_isolated(
    tick: str,
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    item_key: Callable[[T], str],
    max_concurrency: int = 32,
) -> TickResult[R]:
    """
    Run ``worker`` over every item concurrently, isolating failures.

    Args:
        tick: Tick name used in logs (e.g. "rule_evaluation").
        items: Items to evaluate.
        worker: Coroutine function evaluating one item.
        item_key: Identifier of an item for errors and logs.
        max_concurrency: Maximum items in flight.

    Returns:
        TickResult[R]: Successful results and wrapped errors.
    """
    semaphore = asyncio.Semaphore(max_concurrency)
    item_list = list(items)

    async def guarded(item: T) -> R:
        async with semaphore:
            return await worker(item)

    outcomes = await asyncio.gather(
        *(guarded(item) for item in item_list),
        return_exceptions=True,
    )

    result: TickResult[R] = TickResult()
    for item, outcome in zip(item_list, outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            key = item_key(item)
            if isinstance(outcome, EvaluationError):
                error = outcome
            else:
                error = EvaluationError(key, str(outcome) or type(outcome).__name__, cause=outcome)  # type: ignore[arg-type]
            result.errors.append(error)
            logger.error(
                "evaluation_item_failed",
                tick=tick,
                item=key,
                error=str(error),
                error_type=type(outcome).__name__,
            )
        else:
            result.results.append(outcome)

    return result
