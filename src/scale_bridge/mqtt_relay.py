"""Reenvío opcional de lecturas a un broker MQTT."""

import json
import logging
import ssl

import paho.mqtt.client as mqtt

from .config import MQTTConfig
from .store import WeightReading

logger = logging.getLogger(__name__)


class MQTTRelay:
    """Publica cada lectura como mensaje retenido en un tópico MQTT."""

    def __init__(self, config: MQTTConfig):
        """
        Inicializa el cliente MQTT.

        Args:
            config: Configuración del broker MQTT
        """
        self.config = config
        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id="scale-bridge",
        )

        # Configurar callbacks
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        # Configurar SSL/TLS si está habilitado
        if config.use_ssl:
            self.client.tls_set(tls_version=ssl.PROTOCOL_TLS_CLIENT)

        # Configurar autenticación si está disponible
        if config.username and config.password:
            self.client.username_pw_set(config.username, config.password)

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Callback cuando se conecta al broker MQTT."""
        if reason_code.is_failure:
            logger.error(f"❌ Error al conectar al broker MQTT: {reason_code}")
            logger.error(f"   Broker: {self.config.broker}:{self.config.port}")
            return
        logger.info("✅ CONECTADO exitosamente al broker MQTT")
        logger.info(f"   Tópico de publicación: {self.config.topic}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        """Callback cuando se desconecta del broker MQTT."""
        if reason_code.is_failure:
            logger.warning(f"Desconexión inesperada del broker MQTT: {reason_code}")
        else:
            logger.info("Desconectado del broker MQTT")

    def publish(self, reading: WeightReading) -> None:
        """Publica la lectura; los fallos se registran sin interrumpir al puente."""
        payload = json.dumps({
            "weight": reading.value,
            "timestamp": int(reading.captured_at.timestamp() * 1000),
        })
        result = self.client.publish(self.config.topic, payload, qos=0, retain=True)

        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"Lectura publicada en {self.config.topic}")
        else:
            logger.warning(f"No se pudo publicar la lectura, código: {result.rc}")

    def start(self) -> None:
        """Conecta en segundo plano; paho reintenta por su cuenta."""
        logger.info(f"Conectando al broker MQTT {self.config.broker}:{self.config.port}...")
        self.client.connect_async(self.config.broker, self.config.port, keepalive=60)
        self.client.loop_start()

    def stop(self) -> None:
        """Detiene el cliente MQTT."""
        logger.info("Deteniendo cliente MQTT...")
        self.client.disconnect()
        self.client.loop_stop()
