"""Delays between broker connect attempts.

One delay is yielded per attempt; the session breaks out on the first success. The
receiver runs with max_attempts=1 by default, so a refused connect is fatal straight
away with no sleep; MAX_CONNECTION_ATTEMPTS opts into retrying with growing delays,
capped at max_delay.
"""
import asyncio
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        yield delay
        if attempt < max_attempts:
            await asyncio.sleep(delay)
            delay = min(delay * multiplier, max_delay)
