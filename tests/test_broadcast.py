"""Tests para la difusión WebSocket."""

import json
import threading

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect

from scale_bridge.broadcast import BroadcastHub, PushServer
from scale_bridge.store import WeightReading, WeightStore


class FakeConnection:
    """Peer WebSocket simulado que guarda los mensajes enviados."""

    def __init__(self, error=None):
        self.messages = []
        self.error = error

    def send(self, message):
        if self.error is not None:
            raise self.error
        self.messages.append(json.loads(message))


@pytest.fixture
def store():
    return WeightStore()


@pytest.fixture
def hub(store):
    return BroadcastHub(store)


class TestBroadcastHub:
    """Tests para BroadcastHub."""

    def test_subscribe_sends_current_reading(self, hub):
        """Test que un suscriptor nuevo recibe la lectura actual."""
        conn = FakeConnection()
        subscriber = hub.subscribe(conn)

        assert subscriber is not None
        assert conn.messages == [{"weight": 0.0}]
        assert len(hub) == 1

    def test_late_subscriber_gets_latest(self, hub, store):
        """Test que un suscriptor tardío recibe la última lectura, no una anterior."""
        for value in (10.0, 20.0, 30.0):
            reading = WeightReading.now(value)
            store.set(reading)
            hub.publish(reading)

        conn = FakeConnection()
        hub.subscribe(conn)

        assert conn.messages[0] == {"weight": 30.0}

    def test_publish_to_all(self, hub):
        """Test que publish llega a todos los suscriptores."""
        first, second = FakeConnection(), FakeConnection()
        hub.subscribe(first)
        hub.subscribe(second)

        delivered = hub.publish(WeightReading.now(70.0))

        assert delivered == 2
        assert first.messages[-1] == {"weight": 70}
        assert second.messages[-1] == {"weight": 70}

    def test_send_failure_removes_only_that_subscriber(self, hub):
        """Test que un fallo de envío elimina solo a ese suscriptor."""
        healthy = FakeConnection()
        broken = FakeConnection()
        hub.subscribe(healthy)
        hub.subscribe(broken)
        broken.error = ConnectionClosed(None, None)

        delivered = hub.publish(WeightReading.now(5.0))

        assert delivered == 1
        assert len(hub) == 1
        assert healthy.messages[-1] == {"weight": 5.0}

    def test_subscribe_closed_connection(self, hub):
        """Test que una conexión ya cerrada no queda registrada."""
        assert hub.subscribe(FakeConnection(error=OSError("closed"))) is None
        assert len(hub) == 0

    def test_unsubscribe(self, hub):
        """Test de desuscripción (idempotente)."""
        conn = FakeConnection()
        subscriber = hub.subscribe(conn)

        hub.unsubscribe(subscriber)
        hub.unsubscribe(subscriber)
        hub.publish(WeightReading.now(1.0))

        assert len(hub) == 0
        assert conn.messages == [{"weight": 0.0}]

    def test_concurrent_subscribe_and_publish(self, hub):
        """Test que suscripciones concurrentes no rompen la difusión."""
        connections = [FakeConnection() for _ in range(50)]
        threads = [threading.Thread(target=hub.subscribe, args=(c,)) for c in connections]

        for thread in threads:
            thread.start()
        for value in range(20):
            hub.publish(WeightReading.now(float(value)))
        for thread in threads:
            thread.join()

        assert len(hub) == 50
        final = WeightReading.now(99.0)
        assert hub.publish(final) == 50
        for conn in connections:
            assert conn.messages[-1] == {"weight": 99.0}

    def test_submit_does_not_wait_for_stalled_peer(self, hub):
        """Test que submit() vuelve aunque un peer bloquee el envío, y conserva el orden."""
        release = threading.Event()
        conn = FakeConnection()
        hub.subscribe(conn)
        record_send = conn.send

        def stalled_send(message):
            release.wait(timeout=5)
            record_send(message)

        conn.send = stalled_send

        first = hub.submit(WeightReading.now(1.0))
        second = hub.submit(WeightReading.now(2.0))
        assert not second.done()

        release.set()
        assert first.result(timeout=5) == 1
        assert second.result(timeout=5) == 1
        assert conn.messages == [{"weight": 0.0}, {"weight": 1.0}, {"weight": 2.0}]
        hub.close()


class TestPushServer:
    """Tests del servidor WebSocket real."""

    def test_websocket_client_receives_updates(self, hub, store):
        """Test que un cliente WebSocket recibe la lectura inicial y las nuevas."""
        server = PushServer(hub, "127.0.0.1", 0)
        server.start()
        try:
            reading = WeightReading.now(42.0)
            store.set(reading)
            with connect(f"ws://127.0.0.1:{server.port}", open_timeout=5) as ws:
                assert json.loads(ws.recv(timeout=5)) == {"weight": 42.0}

                hub.publish(WeightReading.now(43.5))
                assert json.loads(ws.recv(timeout=5)) == {"weight": 43.5}

                ws.send("ignorado")
        finally:
            server.stop()
