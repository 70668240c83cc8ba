"""
First-truthy race over independent async predicates.

All branches start together. The first branch that settles with a truthy
value wins and is returned at once; every sibling still running is cancelled
and left to unwind on its own. A branch that raises counts as falsy.

Usage:
    has_access = await first_truthy(
        lambda: is_user_vip(db, user_id),
        lambda: has_early_submission(db, user_id),
    )
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Union

from utils.metrics_utils import RACE_BRANCH_ERRORS

logger = logging.getLogger(__name__)

Branch = Union[Callable[[], Awaitable[Any]], Awaitable[Any]]


def _schedule(branch: Branch) -> "asyncio.Future[Any]":
    if callable(branch):
        branch = branch()
    return asyncio.ensure_future(branch)


def _reap(task: "asyncio.Future[Any]"):
    # Retrieve the outcome so a failed loser is never reported as unretrieved
    if not task.cancelled():
        task.exception()


async def first_truthy(*branches: Branch) -> Any:
    """
    Return the first truthy branch result, or False once every branch is falsy.

    Algorithm:
        1. Schedule every branch as a task
        2. Wait for the next completion; skip faults (logged) and falsy values
        3. On a truthy value, stop waiting and return it
        4. In all exit paths cancel unfinished siblings without waiting for them;
           their outcomes are collected in the background

    Args:
        *branches: Zero-argument coroutine functions or awaitables

    Returns:
        The winning truthy value, or False
    """
    tasks = [_schedule(branch) for branch in branches]
    pending = set(tasks)

    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            # Several branches may finish in the same tick; prefer declaration order
            for task in (t for t in tasks if t in done):
                if task.cancelled():
                    continue
                error = task.exception()
                if error is not None:
                    RACE_BRANCH_ERRORS.inc()
                    logger.warning(f"Race branch failed, treating as falsy: {error!r}")
                    continue
                result = task.result()
                if result:
                    return result
        return False
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
                task.add_done_callback(_reap)
