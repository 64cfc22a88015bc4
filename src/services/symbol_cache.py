from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class SingleFlightCache(Generic[T]):
    """Lazily load a value once and share it between concurrent callers.

    Callers arriving while a load is in flight wait on the same future. A
    failed load is not cached: the error goes to every waiter and the next
    call starts a fresh load.
    """

    def __init__(self, loader: Callable[[], T]) -> None:
        self._loader = loader
        self._lock = threading.Lock()
        self._future: Future[T] | None = None

    def get(self) -> T:
        with self._lock:
            future = self._future
            owner = future is None
            if future is None:
                future = self._future = Future()

        if not owner:
            return future.result()

        try:
            value = self._loader()
        except BaseException as exc:
            with self._lock:
                self._future = None
            future.set_exception(exc)
            raise
        future.set_result(value)
        return value

    def reset(self) -> None:
        with self._lock:
            self._future = None


__all__ = ["SingleFlightCache"]
