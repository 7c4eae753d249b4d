"""Bridge from the synchronous CLI into the async dispatch code."""

from __future__ import annotations

from typing import Coroutine, TypeVar

import anyio

T = TypeVar("T")


def run_async(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Drive a coroutine to completion on a fresh event loop.

    Only for threads without a running loop (CLI commands). Request handlers
    and the worker are async already and await directly.
    """

    async def _main() -> T:
        with anyio.fail_after(timeout):
            return await coro

    return anyio.run(_main)
