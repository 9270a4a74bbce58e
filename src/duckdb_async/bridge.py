"""
Callback-to-future bridging.

The native client follows one convention: positional arguments followed by
a trailing ``callback(err, result)``. `promisify()` turns any such callable
into a function that issues the call immediately and returns an
`asyncio.Future` settling once with the callback's outcome.

The callback may fire on any thread. Settlement always happens on the event
loop that was running when the call was issued.
"""
import asyncio
import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

__all__ = [
    'Callback',
    'promisify',
    'promisify_method',
    'relay',
]

logger = logging.getLogger(__name__)

Callback = Callable[[BaseException | None, Any], None]


def _settle(future: asyncio.Future, err: BaseException | None, result: Any) -> None:
    """Apply the first outcome to the future and ignore any later ones."""
    if future.done():
        logger.debug(f'Ignoring late callback for settled future: err={err!r}')
        return
    if err is not None:
        future.set_exception(err)
    else:
        future.set_result(result)


def _future_callback(future: asyncio.Future) -> Callback:
    """Callback that settles `future` from whichever thread invokes it."""
    loop = future.get_loop()

    def callback(err: BaseException | None = None, result: Any = None) -> None:
        if loop.is_closed():
            logger.debug(f'Event loop closed before callback fired: err={err!r}')
            return
        loop.call_soon_threadsafe(_settle, future, err, result)

    return callback


def promisify(fn: Callable[..., Any]) -> Callable[..., asyncio.Future]:
    """Adapt a callback-style function into one returning a future.

    Parameters
        fn: Callable whose last positional argument is ``callback(err, result)``

    Returns
        Function taking the remaining positional arguments and returning an
        `asyncio.Future`. Must be called while an event loop is running.
    """
    @wraps(fn)
    def bridged(*args: Any) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        fn(*args, _future_callback(future))
        return future

    return bridged


def promisify_method(method: Callable[..., Any]) -> Callable[..., asyncio.Future]:
    """Adapt an unbound callback-style method.

    The returned function takes the target instance first:
    ``promisify_method(Native.all)(native, sql)``. The method is looked up on
    the target by name, so subclasses that override it are honoured.
    """
    name = method.__name__

    @wraps(method)
    def bridged(target: Any, *args: Any) -> asyncio.Future:
        return promisify(getattr(target, name))(*args)

    return bridged


def relay(callback: Callable[..., Any] | None) -> Callable[..., None] | None:
    """Move every invocation of a multi-shot callback onto the running loop.

    Used where one call yields many callbacks (one per row) and a single
    future cannot represent the outcome.
    """
    if callback is None:
        return None
    loop = asyncio.get_running_loop()

    @wraps(callback)
    def relayed(*args: Any) -> None:
        if loop.is_closed():
            logger.debug(f'Event loop closed, dropping relayed callback {callback!r}')
            return
        loop.call_soon_threadsafe(callback, *args)

    return relayed
