from __future__ import annotations

from typing import Callable, TypeVar

import anyio

T = TypeVar("T")


async def to_thread(fn: Callable[..., T], *a, **kw) -> T:
    """Run a blocking call (registry lock waits) on the anyio worker pool."""
    return await anyio.to_thread.run_sync(lambda: fn(*a, **kw))
