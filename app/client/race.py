"""Cancellable one-shot race between awaitables."""
import asyncio
from typing import Any, Awaitable


async def first_settled(*awaitables: Awaitable) -> Any:
    """
    Wait for the first awaitable to settle and cancel the others.

    Settled means finished with a result or an exception. If several settle
    in the same loop iteration, the one passed first wins.

    Returns:
        Result of the winner

    Raises:
        Whatever the winner raised
        ValueError: No awaitables given
    """
    if not awaitables:
        raise ValueError('first_settled() needs at least one awaitable')

    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    try:
        done, _pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    winner = next(task for task in tasks if task in done)
    return winner.result()
