"""Punto de entrada principal del puente de báscula."""

import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from .broadcast import BroadcastHub, PushServer
from .config import BridgeConfig, MQTTConfig
from .device_link import DeviceLink
from .mqtt_relay import MQTTRelay
from .poll import PollServer, create_app
from .store import WeightStore

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configura logging a consola y a LOG_DIR/scale_bridge.log."""
    log_dir = os.getenv("LOG_DIR", "logs")
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(os.path.join(log_dir, 'scale_bridge.log'))
        ]
    )


class ScaleBridgeService:
    """Servicio puente: báscula TCP -> WebSocket + HTTP (+ MQTT opcional)."""

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        mqtt_config: Optional[MQTTConfig] = None,
    ):
        """
        Inicializa el servicio.

        Args:
            config: Configuración del puente; por defecto se lee del entorno
            mqtt_config: Configuración MQTT; por defecto se lee del entorno
        """
        self.config = config or BridgeConfig.from_env()
        self.mqtt_config = mqtt_config or MQTTConfig.from_env()
        self.store = WeightStore()
        self.hub = BroadcastHub(self.store)
        self.link = DeviceLink(self.config, self.store, listeners=[self.hub.submit])
        self.push_server = PushServer(self.hub, self.config.bind_host, self.config.websocket_port)
        self.poll_server = PollServer(
            create_app(
                self.store,
                link=self.link,
                probe_candidates=self.config.probe_candidates,
                probe_path=self.config.probe_path,
            ),
            self.config.bind_host,
            self.config.http_port,
        )
        self.mqtt_relay: Optional[MQTTRelay] = None
        if self.mqtt_config.enabled:
            self.mqtt_relay = MQTTRelay(self.mqtt_config)
            self.link.add_listener(self.mqtt_relay.publish)
        self.running = False
        self._stopped = threading.Event()

    def start(self) -> None:
        """Levanta los servidores y el enlace con la báscula (no bloqueante)."""
        logger.info("=== Iniciando Scale Bridge ===")
        logger.info(f"Báscula: {self.config.scale_host}:{self.config.scale_port}")

        self.push_server.start()
        self.poll_server.start()
        if self.mqtt_relay:
            self.mqtt_relay.start()

        self.running = True
        self._stopped.clear()
        self.link.connect()
        logger.info("Servicio iniciado correctamente")

    def run(self) -> None:
        """Inicia el servicio y bloquea hasta recibir SIGINT/SIGTERM."""
        try:
            self.start()

            # Configurar manejador de señales para cierre graceful
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

            self._stopped.wait()
        except KeyboardInterrupt:
            logger.info("Interrupción de teclado recibida")
        except Exception as e:
            logger.error(f"Error fatal: {e}", exc_info=True)
            sys.exit(1)
        finally:
            self.stop()

    def stop(self) -> None:
        """Detiene el servicio."""
        if not self.running:
            return

        logger.info("Deteniendo servicio...")
        self.running = False

        self.link.stop()
        for name, component in (
            ("WebSocket", self.push_server),
            ("HTTP", self.poll_server),
            ("MQTT", self.mqtt_relay),
        ):
            if component is None:
                continue
            try:
                component.stop()
            except OSError as e:
                logger.error(f"Error al detener servidor {name}: {e}")
        self.hub.close()

        self._stopped.set()
        logger.info("Servicio detenido")

    def _signal_handler(self, signum, frame):
        """Maneja señales del sistema para cierre graceful."""
        logger.info(f"Señal {signum} recibida, iniciando cierre...")
        self._stopped.set()


def main():
    """Función principal."""
    configure_logging()
    try:
        service = ScaleBridgeService()
    except ValueError as e:
        logger.error(f"Configuración inválida: {e}", exc_info=True)
        sys.exit(1)
    service.run()


if __name__ == "__main__":
    main()
