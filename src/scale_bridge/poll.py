"""Endpoint HTTP de consulta (respaldo cuando no hay WebSocket)."""

import logging
import threading
from typing import Iterable, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.serving import BaseWSGIServer, make_server

from .device_link import DeviceLink
from .probe import probe_weight
from .store import WeightStore, isoformat

logger = logging.getLogger(__name__)


def create_app(
    store: WeightStore,
    link: Optional[DeviceLink] = None,
    probe_candidates: Iterable[tuple[str, int]] = (),
    probe_path: str = "/peso",
) -> Flask:
    """
    Crea la aplicación Flask del puente.

    Args:
        store: Contenedor de la última lectura (solo lectura)
        link: Enlace con la báscula, para reportar su estado en /status
        probe_candidates: Servidores consultados por /peso
        probe_path: Ruta pedida a cada candidato
    """
    app = Flask(__name__)
    CORS(app)
    app.json.sort_keys = False
    candidates = list(probe_candidates)

    @app.route("/weight", methods=["GET"])
    def weight():
        return jsonify(store.get().to_poll())

    @app.route("/status", methods=["GET"])
    def status():
        last_activity = link.last_activity if link else None
        return jsonify({
            "service": "scale-bridge",
            "link": link.state.value if link else None,
            "lastActivity": isoformat(last_activity) if last_activity else None,
        })

    @app.route("/peso", methods=["GET"])
    def peso():
        host = request.args.get("host")
        port = request.args.get("port", type=int)
        targets = candidates
        if host:
            targets = [(host, port or 3000)]
        return jsonify(probe_weight(targets, path=probe_path))

    return app


class PollServer:
    """Servidor WSGI con hilos que atiende la aplicación en segundo plano."""

    def __init__(self, app: Flask, host: str, port: int):
        self.app = app
        self.host = host
        self.port = port
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self.port = self._server.server_port
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="http-server",
        )
        self._thread.start()
        logger.info(f"Servidor HTTP de respaldo iniciado en http://{self.host}:{self.port}")

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server = None
            logger.info("Servidor HTTP detenido")
