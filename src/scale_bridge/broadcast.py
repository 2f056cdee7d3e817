"""Difusión de lecturas a los suscriptores WebSocket."""

import itertools
import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Protocol

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import Server, ServerConnection, serve

from .store import WeightReading, WeightStore

logger = logging.getLogger(__name__)


class Connection(Protocol):
    def send(self, message: str) -> None: ...


class Subscriber:
    """Handle opaco de un peer WebSocket; solo el hub lo crea y destruye."""

    _ids = itertools.count(1)

    def __init__(self, connection: Connection):
        self.id = next(self._ids)
        self.connection = connection

    def send(self, reading: WeightReading) -> None:
        self.connection.send(json.dumps(reading.to_push()))

    def __repr__(self) -> str:
        return f"Subscriber(id={self.id})"


class BroadcastHub:
    """
    Conjunto de suscriptores con envío de cada lectura a todos.

    Suscribir, publicar y desuscribir se ejecutan bajo el mismo lock, así
    que una difusión nunca recorre un conjunto que cambia de tamaño.
    submit() encola la difusión en un único hilo propio, en orden de llegada.
    """

    def __init__(self, store: WeightStore):
        self.store = store
        self._subscribers: dict[int, Subscriber] = {}
        self._lock = threading.Lock()

        # Un solo hilo conserva el orden de las lecturas
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="broadcast",
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, connection: Connection) -> Optional[Subscriber]:
        """
        Registra un suscriptor y le envía la lectura actual.

        Returns:
            El handle del suscriptor, o None si el envío inicial falló
        """
        subscriber = Subscriber(connection)
        with self._lock:
            try:
                subscriber.send(self.store.get())
            except (ConnectionClosed, OSError) as e:
                logger.info(f"Cliente WebSocket cerrado antes del primer envío: {e}")
                return None
            self._subscribers[subscriber.id] = subscriber
            total = len(self._subscribers)
        logger.info(f"Cliente WebSocket conectado ({total} activos)")
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscriber.id, None)
            total = len(self._subscribers)
        if removed is not None:
            logger.info(f"Cliente WebSocket desconectado ({total} activos)")

    def publish(self, reading: WeightReading) -> int:
        """
        Envía la lectura a todos los suscriptores.

        Returns:
            Cantidad de suscriptores que la recibieron
        """
        delivered = 0
        with self._lock:
            for subscriber in list(self._subscribers.values()):
                try:
                    subscriber.send(reading)
                    delivered += 1
                except (ConnectionClosed, OSError) as e:
                    logger.info(f"Suscriptor {subscriber.id} eliminado tras fallo de envío: {e}")
                    del self._subscribers[subscriber.id]
        logger.debug(f"Peso {reading.value} kg enviado a {delivered} suscriptores")
        return delivered

    def submit(self, reading: WeightReading) -> Future:
        """Encola publish(reading) en el hilo de difusión."""
        return self._executor.submit(self.publish, reading)

    def close(self) -> None:
        self._executor.shutdown(wait=False)


class PushServer:
    """Servidor WebSocket que conecta cada peer con el BroadcastHub."""

    def __init__(self, hub: BroadcastHub, host: str, port: int):
        self.hub = hub
        self.host = host
        self.port = port
        self._server: Optional[Server] = None
        self._thread: Optional[threading.Thread] = None

    def handler(self, websocket: ServerConnection) -> None:
        subscriber = self.hub.subscribe(websocket)
        if subscriber is None:
            return
        try:
            # Los mensajes entrantes no tienen significado; se descartan
            for _ in websocket:
                pass
        except ConnectionClosed as e:
            logger.debug(f"Cierre anormal del suscriptor {subscriber.id}: {e}")
        finally:
            self.hub.unsubscribe(subscriber)

    def start(self) -> None:
        self._server = serve(self.handler, self.host, self.port)
        self.port = self._server.socket.getsockname()[1]
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="websocket-server",
        )
        self._thread.start()
        logger.info(f"Servidor WebSocket iniciado en ws://{self.host}:{self.port}")

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server = None
            logger.info("Servidor WebSocket detenido")
