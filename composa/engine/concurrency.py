"""Concurrent fan-out for independent store fetches."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable


async def gather_all[T](*aws: Awaitable[T]) -> list[T]:
    """Await *aws* concurrently and return their results in order.

    The first failure cancels the fetches still in flight and is re-raised
    as is, so callers see a ``StoreError`` rather than an ``ExceptionGroup``.
    """
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(_run(aw)) for aw in aws]
    except ExceptionGroup as failure:
        raise failure.exceptions[0] from None
    return [task.result() for task in tasks]


async def _run[T](aw: Awaitable[T]) -> T:
    return await aw
