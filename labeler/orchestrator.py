"""Run independent per-item tasks concurrently and reduce them to one report.

Tasks share nothing but read-only settings and return their results by
value, so no locking is needed. A task that raises never affects its
siblings: the exception is turned into a failure result and every task is
waited for before the report is built.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)


class Outcome(Protocol):
    success: bool


R = TypeVar("R", bound=Outcome)


def run_tasks(
    tasks: dict[int, Callable[[], R]],
    on_error: Callable[[int, Exception], R],
    max_workers: Optional[int] = None,
) -> tuple[list[R], bool]:
    """
    Execute every task concurrently and join all outcomes.

    Args:
        tasks: One zero-argument callable per item number
        on_error: Builds the failure result for an item whose task raised
        max_workers: Thread pool size (default: ThreadPoolExecutor's default)

    Returns:
        (results, success): results ordered by item number ascending,
        independent of completion order; success is True only if every
        result succeeded (and True for an empty batch)
    """
    if not tasks:
        return [], True

    results: dict[int, R] = {}

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="labeler") as executor:
        futures = {number: executor.submit(task) for number, task in tasks.items()}

        for number, future in futures.items():
            try:
                results[number] = future.result()
            except Exception as e:
                logger.error(f"#{number}: ✗ Exception occurred - {e}")
                results[number] = on_error(number, e)

    ordered = [results[number] for number in sorted(results)]
    success = all(result.success for result in ordered)

    logger.info(
        f"Completed {len(ordered)} tasks: "
        f"{sum(1 for r in ordered if r.success)} succeeded, "
        f"{sum(1 for r in ordered if not r.success)} failed"
    )
    return ordered, success
