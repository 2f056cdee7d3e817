"""Fixtures compartidas."""

from unittest.mock import patch

import pytest


class FakeTimer:
    """Reemplazo de threading.Timer que solo se dispara manualmente."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.name = ""
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        """Ejecuta el callback como lo haría el hilo del temporizador."""
        self.function()


@pytest.fixture
def fake_timers():
    """Intercepta los temporizadores de RetryTimer y los expone en una lista."""
    timers = []

    def factory(interval, function):
        timer = FakeTimer(interval, function)
        timers.append(timer)
        return timer

    with patch("scale_bridge.timers.Timer", side_effect=factory):
        yield timers
