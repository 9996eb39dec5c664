"""
Fixed-interval polling for asynchronous batch jobs.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from core.exceptions import ProcessingError

logger = logging.getLogger(__name__)


async def poll_until(
    fetch: Callable[[], Awaitable[Any]],
    is_done: Callable[[Any], bool],
    interval_seconds: float = 30.0,
    max_attempts: Optional[int] = None,
    on_poll: Callable[[Any, int], None] = None,
    phase: str = "polling"
) -> Any:
    """
    Poll `fetch` until `is_done` accepts its result.

    The caller suspends between polls. Without `max_attempts` there is no
    cutoff beyond the remote job's own lifetime.

    Args:
        fetch: Coroutine factory returning the current job state
        is_done: Predicate on the job state
        interval_seconds: Sleep between polls
        max_attempts: Optional cap on the number of polls
        on_poll: Optional (state, attempt) callback
        phase: Phase name reported if the cap is hit

    Returns:
        The first state accepted by `is_done`
    """
    attempt = 0
    while True:
        attempt += 1
        state = await fetch()

        if on_poll:
            on_poll(state, attempt)

        if is_done(state):
            logger.info("Polling finished after %d attempt(s)", attempt)
            return state

        if max_attempts and attempt >= max_attempts:
            raise ProcessingError(
                f"Gave up after {attempt} polls",
                phase=phase,
                recoverable=True
            )

        logger.debug("Poll %d not done, sleeping %.1fs", attempt, interval_seconds)
        await asyncio.sleep(interval_seconds)
