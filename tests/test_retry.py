"""
Tests for the backoff policy.
"""
import asyncio

import pytest

from mongoagent.utils.retry import BackoffPolicy, wait_or_event


def test_exponential_delays_are_capped():
    policy = BackoffPolicy(initial_delay=0.5, max_delay=10.0, exponential_base=2.0)

    assert [policy.delay(n) for n in range(1, 7)] == [0.5, 1.0, 2.0, 4.0, 8.0, 10.0]


def test_exhausted():
    policy = BackoffPolicy(max_attempts=3)

    assert not policy.exhausted(2)
    assert policy.exhausted(3)


def test_from_settings(test_settings):
    policy = BackoffPolicy.from_settings(test_settings)

    assert policy.max_attempts == 3
    assert policy.initial_delay == 0.0


@pytest.mark.asyncio
async def test_wait_or_event_times_out():
    assert await wait_or_event(0.01, asyncio.Event()) is False


@pytest.mark.asyncio
async def test_wait_or_event_interrupted():
    event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.01, event.set)

    assert await wait_or_event(5.0, event) is True
