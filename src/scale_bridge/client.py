"""
Cliente del puente: WebSocket primero, consulta HTTP como respaldo.

Cada instancia de ScaleConnectionManager tiene su propio socket y sus
propios temporizadores. Todo callback (hilo de WebSocket, tick de consulta)
lleva la generación con la que se creó; disconnect() incrementa la
generación, así que un callback que llega después del cierre no hace nada.
"""

import json
import logging
import threading
from enum import Enum
from typing import Callable, Optional

import requests
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import ClientConnection
from websockets.sync.client import connect as ws_connect

from .config import ClientConfig, save_client_config
from .timers import RetryTimer

logger = logging.getLogger(__name__)

PUSH_ATTEMPTS = 3
PUSH_TIMEOUT = 2.0  # segundos por intento WebSocket
PUSH_RETRY_DELAY = 1.0
POLL_INTERVAL = 2.0
POLL_TIMEOUT = 2.0
TEST_TIMEOUT = 5.0


class ClientState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class TransportKind(Enum):
    NONE = "none"
    PUSH = "push"
    POLL = "poll"


WeightCallback = Callable[[float], None]
StatusCallback = Callable[[ClientState, TransportKind, Optional[str]], None]


class ScaleConnectionManager:
    """Selecciona el transporte, hace el respaldo y se cierra sin fugas."""

    def __init__(
        self,
        config: ClientConfig,
        on_weight: Optional[WeightCallback] = None,
        on_status: Optional[StatusCallback] = None,
        push_attempts: int = PUSH_ATTEMPTS,
        push_timeout: float = PUSH_TIMEOUT,
        push_retry_delay: float = PUSH_RETRY_DELAY,
        poll_interval: float = POLL_INTERVAL,
        poll_timeout: float = POLL_TIMEOUT,
    ):
        """
        Inicializa el administrador de conexión.

        Args:
            config: Host y puertos del puente
            on_weight: Recibe cada peso entregado por cualquier transporte
            on_status: Recibe (estado, transporte, mensaje) en cada cambio
            push_attempts: Intentos WebSocket antes de pasar a consulta HTTP
            push_timeout: Tiempo máximo de cada intento WebSocket
            push_retry_delay: Espera entre intentos WebSocket
            poll_interval: Intervalo fijo entre consultas HTTP
            poll_timeout: Tiempo máximo de cada consulta HTTP
        """
        self.config = config
        self.on_weight = on_weight
        self.on_status = on_status
        self.push_attempts = push_attempts
        self.push_timeout = push_timeout
        self.push_retry_delay = push_retry_delay
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout

        self._state = ClientState.DISCONNECTED
        self._transport = TransportKind.NONE
        self._error_message: Optional[str] = None
        self._weight = 0.0
        self._generation = 0
        self._abort = threading.Event()
        self._socket: Optional[ClientConnection] = None
        self._poll_timer = RetryTimer("client-poll")
        self._lock = threading.RLock()

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def transport(self) -> TransportKind:
        return self._transport

    @property
    def weight(self) -> float:
        return self._weight

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    def connect(self) -> bool:
        """
        Inicia la conexión (WebSocket y luego HTTP).

        Returns:
            False si ya estaba conectando o conectado
        """
        with self._lock:
            if self._state in (ClientState.CONNECTING, ClientState.CONNECTED):
                return False
            self._generation += 1
            generation = self._generation
            self._abort = threading.Event()
            abort = self._abort
            self._state = ClientState.CONNECTING
            self._transport = TransportKind.NONE
            self._error_message = None

        logger.info(f"🔄 Conectando con el puente en {self.config.ws_url}...")
        self._notify()
        self._spawn(self._push_worker, generation, abort)
        return True

    def disconnect(self) -> None:
        """
        Cierra el transporte activo y cancela los temporizadores.

        La generación se invalida antes de cerrar el socket, así que el
        cierre provocado aquí no se confunde con una desconexión inesperada.
        """
        with self._lock:
            self._generation += 1
            self._abort.set()
            websocket, self._socket = self._socket, None
            changed = (
                self._state is not ClientState.DISCONNECTED
                or self._transport is not TransportKind.NONE
            )
            self._state = ClientState.DISCONNECTED
            self._transport = TransportKind.NONE
            self._error_message = None

        self._poll_timer.cancel()
        if websocket is not None:
            # close() espera el cierre ordenado; no se bloquea al llamador
            self._spawn(websocket.close)
        if changed:
            logger.info("Desconectado del puente")
            self._notify()

    def reconfigure(self, config: ClientConfig) -> None:
        """Aplica una configuración nueva con un ciclo completo de desconexión."""
        self.disconnect()
        self.config = config
        self.connect()

    def save_config(self, config: ClientConfig, config_path: Optional[str] = None) -> bool:
        """Persiste la configuración y reconecta con ella."""
        try:
            save_client_config(config, config_path)
        except OSError as e:
            logger.error(f"No se pudo guardar la configuración del cliente: {e}")
            return False
        self.reconfigure(config)
        return True

    def _spawn(self, target: Callable, *args) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, daemon=True, name="scale-client")
        thread.start()
        return thread

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _notify(self) -> None:
        if self.on_status is None:
            return
        try:
            self.on_status(self._state, self._transport, self._error_message)
        except Exception as e:
            logger.error(f"Error en el callback de estado: {e}", exc_info=True)

    def _deliver(self, generation: int, weight: float) -> None:
        with self._lock:
            if not self._is_current(generation):
                return
            self._weight = weight
        if self.on_weight is not None:
            try:
                self.on_weight(weight)
            except Exception as e:
                logger.error(f"Error en el callback de peso: {e}", exc_info=True)

    def _push_worker(self, generation: int, abort: threading.Event) -> None:
        """Intenta abrir el WebSocket; si se agotan los intentos, pasa a HTTP."""
        url = self.config.ws_url
        for attempt in range(1, self.push_attempts + 1):
            if abort.is_set():
                return
            try:
                websocket = ws_connect(url, open_timeout=self.push_timeout)
            except (OSError, WebSocketException) as e:
                logger.warning(
                    f"⚠️ Intento WebSocket {attempt}/{self.push_attempts} "
                    f"fallido en {url}: {e}"
                )
                if attempt < self.push_attempts and abort.wait(self.push_retry_delay):
                    return
                continue

            if not self._attach(generation, websocket):
                websocket.close()
                return
            self._receive(generation, websocket)
            return

        logger.warning(f"⚠️ WebSocket no disponible, usando consulta HTTP en {self.config.weight_url}")
        self._start_polling(generation)

    def _attach(self, generation: int, websocket: ClientConnection) -> bool:
        with self._lock:
            if not self._is_current(generation):
                return False
            self._socket = websocket
            self._state = ClientState.CONNECTED
            self._transport = TransportKind.PUSH
        self._poll_timer.cancel()
        logger.info(f"✅ WebSocket conectado en {self.config.ws_url}")
        self._notify()
        return True

    def _receive(self, generation: int, websocket: ClientConnection) -> None:
        try:
            for message in websocket:
                if not self._is_current(generation):
                    return
                self._handle_message(generation, message)
        except ConnectionClosed as e:
            logger.debug(f"WebSocket cerrado: {e}")

        with self._lock:
            if not self._is_current(generation):
                return
            self._socket = None
        logger.warning("⚠️ WebSocket cerrado inesperadamente, usando consulta HTTP")
        self._start_polling(generation)

    def _handle_message(self, generation: int, message: str | bytes) -> None:
        try:
            data = json.loads(message)
            weight = float(data["weight"])
        except (ValueError, KeyError, TypeError) as e:
            logger.debug(f"Mensaje WebSocket ignorado ({e}): {message!r}")
            return
        self._deliver(generation, weight)

    def _start_polling(self, generation: int) -> None:
        with self._lock:
            if not self._is_current(generation):
                return
            self._state = ClientState.CONNECTED
            self._transport = TransportKind.POLL
        self._notify()
        self._poll_tick(generation)

    def _poll_tick(self, generation: int) -> None:
        """Una consulta HTTP; si tiene éxito programa la siguiente."""
        if not self._is_current(generation):
            return

        url = self.config.weight_url
        try:
            response = requests.get(url, timeout=self.poll_timeout)
            response.raise_for_status()
            weight = float(response.json()["weight"])
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            self._fail(generation, f"No se pudo consultar el peso en {url}: {e}")
            return

        self._deliver(generation, weight)
        with self._lock:
            if not self._is_current(generation):
                return
            changed = (
                self._state is not ClientState.CONNECTED
                or self._transport is not TransportKind.POLL
            )
            self._state = ClientState.CONNECTED
            self._transport = TransportKind.POLL
            self._poll_timer.start(self.poll_interval, lambda: self._poll_tick(generation))
        if changed:
            self._notify()

    def _fail(self, generation: int, message: str) -> None:
        with self._lock:
            if not self._is_current(generation):
                return
            self._state = ClientState.ERROR
            self._transport = TransportKind.NONE
            self._error_message = message
        self._poll_timer.cancel()
        logger.error(f"❌ {message}")
        self._notify()

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()


def check_connection(config: ClientConfig, timeout: float = TEST_TIMEOUT) -> tuple[bool, str]:
    """
    Prueba el endpoint HTTP del puente una sola vez.

    Returns:
        (True, "ÉXITO: {...}") o (False, "ERROR: ...")
    """
    url = config.weight_url
    logger.info(f"Probando {url}...")
    try:
        response = requests.get(url, timeout=timeout, headers={"Cache-Control": "no-store"})
        response.raise_for_status()
        data = response.json()
    except requests.Timeout:
        return False, f"ERROR: Timeout. La conexión tardó más de {timeout:g} segundos."
    except (requests.RequestException, ValueError) as e:
        return False, f"ERROR: {e}"
    return True, f"ÉXITO: {json.dumps(data)}"
