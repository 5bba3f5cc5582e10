"""Bounded concurrent execution of remote calls."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable


DEFAULT_CONCURRENCY = 5


async def gather_with_concurrency[T](
    coros: Iterable[Awaitable[T]],
    *,
    limit: int | None = DEFAULT_CONCURRENCY,
) -> list[T | Exception]:
    """Run awaitables with a concurrency limit and settle all of them.

    Unlike a plain gather this never fails fast: every awaitable runs to
    completion and its exception takes its slot in the result list.

    Args:
        coros: Iterable of awaitables to execute
        limit: Maximum concurrent tasks (None = unlimited)

    Returns:
        Results or exceptions, in the same order as the input
    """
    coros_list = list(coros)

    if limit is None or limit <= 0:
        wrapped = coros_list
    else:
        semaphore = asyncio.Semaphore(limit)

        async def limited(coro: Awaitable[T]) -> T:
            async with semaphore:
                return await coro

        wrapped = [limited(c) for c in coros_list]

    results = await asyncio.gather(*wrapped, return_exceptions=True)
    settled: list[T | Exception] = []
    for result in results:
        # Cancellation and interpreter exits are not per-item failures.
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        settled.append(result)
    return settled
