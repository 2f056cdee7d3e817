"""Temporizador único por rol (reconexión, sondeo)."""

import logging
from threading import Lock, Timer
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RetryTimer:
    """
    Mantiene como máximo un temporizador pendiente.

    start() cancela el temporizador anterior; start_if_idle() no hace nada
    si ya hay uno pendiente. Cancelar nunca bloquea.
    """

    def __init__(self, name: str):
        self.name = name
        self._timer: Optional[Timer] = None
        self._lock = Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def start(self, delay: float, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._arm(delay, callback)

    def start_if_idle(self, delay: float, callback: Callable[[], None]) -> bool:
        with self._lock:
            if self._timer is not None:
                return False
            self._arm(delay, callback)
            return True

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _arm(self, delay: float, callback: Callable[[], None]) -> None:
        timer: Timer

        def fire():
            with self._lock:
                if self._timer is not timer:
                    return
                self._timer = None
            callback()

        timer = Timer(delay, fire)
        timer.daemon = True
        timer.name = f"{self.name}-timer"
        self._timer = timer
        timer.start()
        logger.debug(f"Temporizador {self.name} programado en {delay}s")
