from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer(delay: float, fn: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    return timer


class Debouncer:
    """
    Kör `fn` en gång när `delay` sekunder gått utan nya anrop till trigger().

    Varje trigger() ersätter den väntande timern. En timer som redan hunnit
    starta men ersatts kör inte fn (generationsräknare).
    Timerfabriken kan bytas ut i tester.
    """

    def __init__(
        self,
        delay: float,
        fn: Callable[[], None],
        *,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self.delay = delay
        self._fn = fn
        self._timer_factory = timer_factory or thread_timer
        self._lock = threading.Lock()
        self._timer: Optional[TimerHandle] = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._timer = self._timer_factory(self.delay, lambda: self._fire(generation))
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._generation += 1

    def flush(self) -> bool:
        """Kör väntande anrop direkt. Returnerar False om inget väntade."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._generation += 1
        self._fn()
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        self._fn()
