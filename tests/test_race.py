"""Tests for first_settled."""
import asyncio

import pytest

from app.client import first_settled


async def _after(delay, value):
    await asyncio.sleep(delay)
    return value


async def _fail_after(delay):
    await asyncio.sleep(delay)
    raise LookupError('lost')


def test_fastest_wins_and_loser_is_cancelled():
    async def scenario():
        slow = asyncio.ensure_future(_after(1, 'slow'))
        result = await first_settled(_after(0.01, 'fast'), slow)
        await asyncio.sleep(0)
        return result, slow.cancelled()

    assert asyncio.run(scenario()) == ('fast', True)


def test_tie_goes_to_first_argument():
    async def scenario():
        loop = asyncio.get_running_loop()
        first, second = loop.create_future(), loop.create_future()
        second.set_result('second')
        first.set_result('first')
        return await first_settled(first, second)

    assert asyncio.run(scenario()) == 'first'


def test_winner_exception_is_raised():
    async def scenario():
        return await first_settled(_fail_after(0.01), _after(1, 'late'))

    with pytest.raises(LookupError):
        asyncio.run(scenario())


def test_needs_an_awaitable():
    with pytest.raises(ValueError):
        asyncio.run(first_settled())
