"""
Cooperative cancellation for awaited provider calls.

Every async operation takes an explicit token. A token never interrupts
running code; callers check it before applying results.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

from .errors import OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


class CancellationToken:
    """A one-shot cancellation flag, optionally linked to a parent token."""

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []
        self._parent = parent
        if parent is not None:
            parent.on_cancel(self.cancel)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self.detach()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run `callback` on cancellation (immediately if already cancelled)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def detach(self) -> None:
        """Stop following the parent token."""
        if self._parent is not None:
            self._parent.remove_callback(self.cancel)
            self._parent = None

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled()

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._cancelled:
            return
        future = asyncio.get_running_loop().create_future()

        def _resolve() -> None:
            if not future.done():
                future.set_result(None)

        self.on_cancel(_resolve)
        await future


async def cancellable_sleep(delay: float, token: CancellationToken | None = None) -> None:
    """Sleep for `delay` seconds; raise OperationCancelled if `token` fires first."""
    if token is None:
        await asyncio.sleep(delay)
        return

    token.raise_if_cancelled()
    sleeper = asyncio.ensure_future(asyncio.sleep(delay))
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, waiter):
            if not task.done():
                task.cancel()
    token.raise_if_cancelled()


async def map_cancelled_to_none(
    awaitable: Awaitable[T],
    token: CancellationToken | None = None,
) -> T | None:
    """Await `awaitable`, resolving to None if it was cancelled."""
    try:
        result = await awaitable
    except OperationCancelled:
        return None
    if token is not None and token.cancelled:
        return None
    return result


class LatestRequests(Generic[K]):
    """
    Tracks the most recently issued request per logical key.

    Issuing a request for a key cancels the previous token for that key.
    Only the holder of the current token may apply its result, so the
    request issued last wins regardless of completion order.
    """

    def __init__(self) -> None:
        self._tokens: dict[K, CancellationToken] = {}

    def issue(self, key: K, parent: CancellationToken | None = None) -> CancellationToken:
        previous = self._tokens.pop(key, None)
        if previous is not None:
            logger.debug("Superseding pending request for %r", key)
            previous.cancel()
        token = CancellationToken(parent)
        self._tokens[key] = token
        return token

    def is_current(self, key: K, token: CancellationToken) -> bool:
        return self._tokens.get(key) is token and not token.cancelled

    def is_latest(self, key: K, token: CancellationToken) -> bool:
        """True if no newer request was issued for `key`, even if `token` was cancelled."""
        return self._tokens.get(key) is token

    def is_pending(self, key: K) -> bool:
        return key in self._tokens

    def complete(self, key: K, token: CancellationToken) -> None:
        token.detach()
        if self._tokens.get(key) is token:
            del self._tokens[key]

    def cancel(self, key: K) -> None:
        token = self._tokens.pop(key, None)
        if token is not None:
            token.cancel()

    def cancel_all(self) -> None:
        tokens = list(self._tokens.values())
        self._tokens.clear()
        for token in tokens:
            token.cancel()

    def pending_keys(self) -> list[K]:
        return list(self._tokens)
