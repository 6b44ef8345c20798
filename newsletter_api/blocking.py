from __future__ import annotations

import anyio


async def to_thread(fn, *a, **kw):
    return await anyio.to_thread.run_sync(lambda: fn(*a, **kw))


async def bounded(timeout: float | None, fn, *a, **kw):
    """Run ``fn`` in a worker thread, raising ``TimeoutError`` after ``timeout``.

    A falsy timeout means no bound. On expiry the worker thread is abandoned,
    not interrupted.
    """

    if not timeout:
        return await to_thread(fn, *a, **kw)
    with anyio.fail_after(timeout):
        return await anyio.to_thread.run_sync(
            lambda: fn(*a, **kw), abandon_on_cancel=True
        )
