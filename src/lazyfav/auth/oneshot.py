"""
One-shot result cell used to hand the authorization code from the callback
server thread to the waiting event loop.

States::

    PENDING -> COMPLETED(value)
    PENDING -> CLOSED(reason)

Both terminal states are final. The cell accepts at most one value and can be
awaited at most once.
"""

from __future__ import annotations

import asyncio
import enum
import threading
from typing import Generic, TypeVar

from lazyfav.errors import ListenerError

T = TypeVar("T")


class CellState(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CLOSED = "closed"


class OneShot(Generic[T]):
    """Thread-safe single-assignment cell with an async waiter."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = CellState.PENDING
        self._value: T | None = None
        self._reason = ""
        self._awaited = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._future: asyncio.Future[None] | None = None

    @property
    def state(self) -> CellState:
        return self._state

    @property
    def done(self) -> bool:
        return self._state is not CellState.PENDING

    def try_complete(self, value: T) -> bool:
        """Store ``value`` if the cell is still pending.

        Returns:
            True if this call completed the cell, False if it was already final.
        """
        with self._lock:
            if self._state is not CellState.PENDING:
                return False
            self._state = CellState.COMPLETED
            self._value = value
        self._wake()
        return True

    def complete(self, value: T) -> None:
        """Like :meth:`try_complete`, but a second completion is a bug."""
        if not self.try_complete(value):
            raise RuntimeError(f"OneShot already {self._state.value}")

    def close(self, reason: str) -> None:
        """Finish without a value. No-op once the cell is final."""
        with self._lock:
            if self._state is not CellState.PENDING:
                return
            self._state = CellState.CLOSED
            self._reason = reason
        self._wake()

    async def wait(self, timeout: float | None = None) -> T:
        """Wait for the value.

        Raises:
            ListenerError: If the cell was closed or ``timeout`` elapsed.
            RuntimeError: If the cell has already been awaited.
        """
        with self._lock:
            if self._awaited:
                raise RuntimeError("OneShot can only be awaited once")
            self._awaited = True
            if self._state is CellState.PENDING:
                self._loop = asyncio.get_running_loop()
                self._future = self._loop.create_future()
            future = self._future

        if future is not None:
            try:
                await asyncio.wait_for(future, timeout)
            except asyncio.TimeoutError:
                self.close(f"no authorization callback within {timeout:g}s")

        return self._result()

    def _result(self) -> T:
        if self._state is CellState.COMPLETED:
            return self._value  # type: ignore[return-value]
        raise ListenerError(self._reason)

    def _wake(self) -> None:
        loop, future = self._loop, self._future
        if loop is None or future is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(_resolve, future)


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)
