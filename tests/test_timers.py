"""Tests para RetryTimer."""

from unittest.mock import Mock

from scale_bridge.timers import RetryTimer


class TestRetryTimer:
    """Tests para RetryTimer."""

    def test_start_replaces_pending(self, fake_timers):
        """Test que start() cancela el temporizador anterior."""
        timer = RetryTimer("poll")
        timer.start(2.0, Mock())
        timer.start(2.0, Mock())

        assert fake_timers[0].cancelled
        assert not fake_timers[1].cancelled
        assert fake_timers[1].daemon

    def test_start_if_idle(self, fake_timers):
        """Test que start_if_idle() respeta un temporizador pendiente."""
        timer = RetryTimer("reconnect")

        assert timer.start_if_idle(5.0, Mock()) is True
        assert timer.start_if_idle(5.0, Mock()) is False
        assert len(fake_timers) == 1
        assert timer.pending

    def test_fire_clears_pending(self, fake_timers):
        """Test que al dispararse deja de estar pendiente."""
        callback = Mock()
        timer = RetryTimer("reconnect")
        timer.start(5.0, callback)

        fake_timers[0].fire()

        callback.assert_called_once()
        assert not timer.pending

    def test_cancelled_timer_does_not_run(self, fake_timers):
        """Test que un disparo tras cancel() no ejecuta el callback."""
        callback = Mock()
        timer = RetryTimer("poll")
        timer.start(2.0, callback)

        timer.cancel()
        fake_timers[0].fire()

        callback.assert_not_called()
