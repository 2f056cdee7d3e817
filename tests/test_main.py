"""Tests para el servicio principal del puente."""

import json
from concurrent.futures import Future
from unittest.mock import MagicMock, patch

import pytest
import serial

from scale_bridge.config import BridgeConfig, MQTTConfig
from scale_bridge.device_link import DeviceLink, LinkState
from scale_bridge.main import ScaleBridgeService


class FakeSubscriberConnection:
    """Peer WebSocket simulado."""

    def __init__(self):
        self.messages = []

    def send(self, message):
        self.messages.append(json.loads(message))


def _sync_submit(fn, *args, **kwargs):
    """Ejecuta la función de forma síncrona y retorna un Future resuelto."""
    future = Future()
    future.set_result(fn(*args, **kwargs))
    return future


def _connection(*reads):
    conn = MagicMock()
    conn.read_until.side_effect = list(reads) + [
        serial.SerialException("socket disconnected")
    ]
    return conn


@pytest.fixture
def service():
    """Fixture con servicio configurado manualmente."""
    config = BridgeConfig(scale_host="127.0.0.1", scale_port=9999, bind_host="127.0.0.1",
                          websocket_port=0, http_port=0)
    return ScaleBridgeService(config, MQTTConfig())


class TestServiceWiring:
    """Tests de construcción del servicio."""

    def test_without_mqtt(self, service):
        """Test que sin broker no se crea el reenvío MQTT."""
        assert service.mqtt_relay is None
        assert service.link.state is LinkState.DISCONNECTED

    @patch('scale_bridge.main.MQTTRelay')
    def test_with_mqtt(self, mock_relay_class):
        """Test que con broker las lecturas también van a MQTT."""
        relay = mock_relay_class.return_value
        service = ScaleBridgeService(BridgeConfig(), MQTTConfig(broker="broker.local"))

        service.link.handle_telegram(b"ST,GS,+0070,00kg")

        assert service.mqtt_relay is relay
        relay.publish.assert_called_once()
        assert relay.publish.call_args[0][0].value == 70.0

    def test_start_and_stop(self, service):
        """Test que start() levanta los servidores y conecta con la báscula."""
        service.push_server = MagicMock()
        service.poll_server = MagicMock()

        with patch.object(DeviceLink, "connect") as mock_connect:
            service.start()

        assert service.running
        service.push_server.start.assert_called_once()
        service.poll_server.start.assert_called_once()
        mock_connect.assert_called_once()

        service.stop()
        service.stop()

        assert not service.running
        service.push_server.stop.assert_called_once()
        service.poll_server.stop.assert_called_once()


class TestEndToEnd:
    """Escenario completo: telegramas, suscriptores, cierre y reconexión."""

    @patch('serial.serial_for_url')
    def test_broadcast_garbage_and_reconnect(self, mock_serial_for_url, service, fake_timers):
        """Test del flujo báscula -> suscriptores con reconexión automática."""
        service.hub._executor.submit = _sync_submit
        first, second = FakeSubscriberConnection(), FakeSubscriberConnection()
        service.hub.subscribe(first)
        service.hub.subscribe(second)

        mock_serial_for_url.side_effect = [
            _connection(b"ST,GS,+0070,00kg\r\n", b"\x02ST,GS,kg??\r\n"),
            _connection(b"ST,GS,+0080,00kg\r\n"),
        ]

        with patch.object(DeviceLink, "_spawn", side_effect=lambda target: target()):
            service.link.connect()

            # Un telegrama válido, uno ilegible y luego el cierre del socket
            assert first.messages == [{"weight": 0}, {"weight": 70}]
            assert second.messages == [{"weight": 0}, {"weight": 70}]
            assert service.store.get().value == 70.0
            assert service.link.state is LinkState.DISCONNECTED
            assert len(fake_timers) == 1
            assert fake_timers[0].interval == 5.0

            fake_timers[0].fire()

        assert mock_serial_for_url.call_count == 2
        assert first.messages[-1] == {"weight": 80}
        assert second.messages[-1] == {"weight": 80}

        client = service.poll_server.app.test_client()
        assert client.get("/weight").get_json()["weight"] == 80.0
