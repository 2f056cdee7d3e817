"""Conexión TCP con la báscula."""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import serial

from .config import BridgeConfig
from .store import WeightReading, WeightStore
from .telegram import MAX_TELEGRAM_LENGTH, TelegramBuffer, decode
from .timers import RetryTimer

logger = logging.getLogger(__name__)

ReadingListener = Callable[[WeightReading], None]


class LinkState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class DeviceLink:
    """
    Cliente TCP de la báscula con reconexión a intervalo fijo.

    El socket se abre con el manejador de URL "socket://" de pySerial y se
    lee en un hilo propio; cada telegrama decodificado se guarda en el
    WeightStore y luego se entrega a los listeners (difusión WebSocket, MQTT).
    """

    def __init__(
        self,
        config: BridgeConfig,
        store: WeightStore,
        listeners: Optional[list[ReadingListener]] = None,
    ):
        """
        Inicializa el enlace con la báscula.

        Args:
            config: Configuración del puente (host, puerto, reintento)
            store: Contenedor de la última lectura
            listeners: Funciones llamadas con cada lectura nueva
        """
        self.config = config
        self.store = store
        self.connection: Optional[serial.SerialBase] = None
        self.last_activity: Optional[datetime] = None
        self._listeners: list[ReadingListener] = list(listeners or [])
        self._state = LinkState.DISCONNECTED
        self._running = True
        self._lock = threading.Lock()
        self._retry = RetryTimer("device-reconnect")
        self._buffer = TelegramBuffer()

    @property
    def state(self) -> LinkState:
        return self._state

    def add_listener(self, listener: ReadingListener) -> None:
        self._listeners.append(listener)

    def connect(self) -> bool:
        """
        Inicia un intento de conexión si el enlace está desconectado.

        Returns:
            False si ya había un intento en curso o una conexión abierta
        """
        with self._lock:
            if not self._running or self._state is not LinkState.DISCONNECTED:
                return False
            self._state = LinkState.CONNECTING

        logger.info(
            f"🔄 Intentando conectar con la báscula en "
            f"{self.config.scale_host}:{self.config.scale_port}..."
        )
        self._spawn(self._run)
        return True

    def stop(self) -> None:
        """
        Detiene el enlace: cancela el reintento y no vuelve a conectar.

        El hilo lector cierra el socket al terminar su lectura en curso.
        """
        with self._lock:
            self._running = False
        self._retry.cancel()
        logger.info("Enlace con la báscula detenido")

    def _spawn(self, target: Callable[[], None]) -> threading.Thread:
        thread = threading.Thread(target=target, daemon=True, name="device-link")
        thread.start()
        return thread

    def _run(self) -> None:
        """Hilo de conexión: abre el socket y lee hasta que se cierre."""
        try:
            connection = serial.serial_for_url(
                self.config.device_url,
                timeout=self.config.read_timeout,
            )
        except (serial.SerialException, OSError) as e:
            logger.error(
                f"❌ Error de conexión TCP con la báscula: {e}. "
                f"Reintentando en {self.config.reconnect_delay}s..."
            )
            self._enter_disconnected()
            return

        with self._lock:
            if not self._running:
                connection.close()
                self._state = LinkState.DISCONNECTED
                return
            self.connection = connection
            self._state = LinkState.CONNECTED
            self.last_activity = datetime.now(timezone.utc)
        self._retry.cancel()
        self._buffer.clear()
        logger.info("✅ Conectado exitosamente al servidor TCP de la báscula")

        try:
            self._read_loop(connection)
        except (serial.SerialException, OSError) as e:
            logger.warning(f"⚠️ Conexión con la báscula perdida: {e}")
        finally:
            # Lo recibido antes del cierre también es una lectura
            for telegram in self._buffer.flush():
                self.handle_telegram(telegram)
            connection.close()
            if self._running:
                logger.info(
                    f"Conexión con la báscula cerrada. "
                    f"Reintentando en {self.config.reconnect_delay}s..."
                )
            self._enter_disconnected()

    def _read_loop(self, connection: serial.SerialBase) -> None:
        while self._running:
            data = connection.read_until(b"\n", size=MAX_TELEGRAM_LENGTH)
            if data:
                telegrams = self._buffer.feed(data)
            else:
                # Flujo inactivo: el telegrama pendiente está completo
                telegrams = self._buffer.flush()
            for telegram in telegrams:
                self.handle_telegram(telegram)

    def handle_telegram(self, telegram: bytes) -> Optional[WeightReading]:
        """
        Decodifica un telegrama y publica la lectura.

        Returns:
            La lectura guardada, o None si el telegrama no tenía un peso
        """
        value = decode(telegram)
        if value is None:
            logger.debug(f"Telegrama sin peso ignorado: {telegram!r}")
            return None

        reading = self.store.set(WeightReading.now(value))
        self.last_activity = reading.captured_at

        for listener in list(self._listeners):
            try:
                listener(reading)
            except Exception as e:
                logger.error(f"Error al entregar lectura a {listener!r}: {e}", exc_info=True)
        return reading

    def _enter_disconnected(self) -> None:
        with self._lock:
            self.connection = None
            self._state = LinkState.DISCONNECTED
            if not self._running:
                return
        self._retry.start_if_idle(self.config.reconnect_delay, self.connect)
