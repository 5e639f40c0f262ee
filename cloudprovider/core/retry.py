"""Deadline-bounded, fixed-delay retry loop.

A step signals "not yet, try again" by raising ``RetryableError``; any other
exception ends the loop immediately. The deadline is an ``asyncio.timeout``
scope: with ``timeout=None`` the loop has no deadline of its own and is
bounded only by whatever timeout scope the caller runs it in.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from cloudprovider.core.exceptions import is_conflict

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableError(Exception):
    """Raised by a retry step to request another attempt after the delay."""


async def retry_until(
    step: Callable[[], Awaitable[T]],
    *,
    delay: float,
    timeout: float | None = None,
    delay_first: bool = False,
) -> T:
    """Run ``step`` until it returns, re-running it on ``RetryableError``.

    Raises ``TimeoutError`` (chained to the last retryable error) when the
    deadline passes. ``delay_first`` sleeps before the first attempt, for
    steps that observe a transition the caller has only just triggered.
    """
    last_error: RetryableError | None = None
    try:
        async with asyncio.timeout(timeout):
            if delay_first:
                await asyncio.sleep(delay)
            while True:
                try:
                    return await step()
                except RetryableError as exc:
                    last_error = exc
                    logger.debug("Retrying step", extra={"reason": str(exc), "delay_s": delay})
                await asyncio.sleep(delay)
    except TimeoutError as exc:
        raise TimeoutError(str(last_error) if last_error else "deadline exceeded") from (
            last_error or exc
        )


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    *,
    delay: float,
    timeout: float | None = None,
) -> T:
    """Retry a remote mutation while it fails with a 409 conflict.

    Used for power transitions, which the remote side rejects while a server
    is busy with another transition. Every other error is raised unchanged;
    on timeout the last conflict error is raised.
    """
    last_conflict: Exception | None = None

    async def step() -> T:
        nonlocal last_conflict
        try:
            return await operation()
        except Exception as exc:
            if is_conflict(exc):
                last_conflict = exc
                logger.warning("Remote object busy, retrying", extra={"detail": str(exc)})
                raise RetryableError(str(exc)) from exc
            raise

    try:
        return await retry_until(step, delay=delay, timeout=timeout)
    except TimeoutError:
        if last_conflict is not None:
            raise last_conflict
        raise
