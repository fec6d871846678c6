"""Settle-all fan-out: run awaitables concurrently, keep failures as values."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


async def _capture(aw: Awaitable[T]) -> T | Exception:
    try:
        return await aw
    except Exception as exc:
        return exc


async def settle_all(awaitables: list[Awaitable[T]]) -> list[T | Exception]:
    """Await all, returning each result or the exception it raised, in input order.

    One failure never cancels its siblings.
    """
    return list(await asyncio.gather(*(_capture(aw) for aw in awaitables)))
