"""Lazily initialised shared resources with a single in-flight initialiser."""

from __future__ import annotations

from concurrent.futures import Future
from threading import Lock
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class OnceCell(Generic[T]):
    """Hold a value produced by ``factory`` on first use.

    Concurrent first callers block on the same future and all receive either
    the same instance or the same exception. A failed initialisation clears
    the cell so that a later call starts a fresh attempt; a successful one is
    kept for the lifetime of the cell.
    """

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._lock = Lock()
        self._future: Optional[Future] = None

    @property
    def initialized(self) -> bool:
        with self._lock:
            future = self._future
        return future is not None and future.done() and future.exception() is None

    def get(self) -> T:
        with self._lock:
            future = self._future
            owner = future is None
            if owner:
                future = Future()
                self._future = future

        if not owner:
            return future.result()

        try:
            value = self._factory()
        except BaseException as exc:
            with self._lock:
                self._future = None
            future.set_exception(exc)
            raise

        future.set_result(value)
        return value


__all__ = ["OnceCell"]
