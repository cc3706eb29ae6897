"""Async helpers for running tool handlers without blocking the event loop."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def maybe_to_thread(offload: bool, func: Callable[..., T], *args, **kwargs) -> T:
    """Run ``func`` in a worker thread when ``offload`` is True."""

    if offload:
        return await asyncio.to_thread(func, *args, **kwargs)
    return func(*args, **kwargs)


async def call_handler(handler: Callable[..., Any], *args, offload: bool = True, **kwargs) -> Any:
    """Await coroutine handlers directly and push plain callables to a thread.

    Handlers built with ``functools.partial`` or returning awaitables from a
    sync wrapper are awaited as well.
    """

    if inspect.iscoroutinefunction(handler):
        return await handler(*args, **kwargs)
    result = await maybe_to_thread(offload, handler, *args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result


__all__ = ["call_handler", "maybe_to_thread"]
