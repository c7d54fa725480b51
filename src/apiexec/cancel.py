import asyncio
import contextlib
from collections.abc import Awaitable
from typing import TypeVar

from .errors import RequestCanceledError

T = TypeVar("T")


class CancelToken:
    """Cooperative cancellation signal shared by one or more calls.

    Suspension points (token acquisition, the send itself, backoff sleeps) race
    against the signal and raise RequestCanceledError as soon as it fires.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCanceledError("operation was canceled")

    async def sleep(self, delay: float) -> None:
        self.raise_if_cancelled()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, delay))
        self.raise_if_cancelled()

    async def run(self, aw: Awaitable[T]) -> T:
        self.raise_if_cancelled()
        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
        raise RequestCanceledError("operation was canceled")


async def sleep(delay: float, cancel: CancelToken | None = None) -> None:
    if cancel is None:
        await asyncio.sleep(delay)
    else:
        await cancel.sleep(delay)


async def run(aw: Awaitable[T], cancel: CancelToken | None = None) -> T:
    if cancel is None:
        return await aw
    return await cancel.run(aw)
