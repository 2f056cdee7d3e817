"""Configuración del puente de báscula y del cliente."""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Cargar variables de entorno desde .env antes de leer os.getenv()
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SCALE_HOST = "192.168.18.8"
DEFAULT_CLIENT_CONFIG_PATH = "scale_client.json"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Valor inválido para {name}: '{value}' (se esperaba un entero)")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Valor inválido para {name}: '{value}' (se esperaba un número)")


def parse_candidates(raw: str) -> list[tuple[str, int]]:
    """
    Convierte "host:puerto,host:puerto" en una lista de tuplas.

    Raises:
        ValueError: Si algún candidato no tiene el formato host:puerto
    """
    candidates = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        host, sep, port = item.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Candidato inválido (se esperaba host:puerto): '{item}'")
        candidates.append((host, int(port)))
    return candidates


@dataclass
class BridgeConfig:
    """Configuración del servicio puente (báscula TCP + WebSocket + HTTP)."""
    scale_host: str = DEFAULT_SCALE_HOST
    scale_port: int = 8080
    bind_host: str = "0.0.0.0"
    websocket_port: int = 3001
    http_port: int = 3002
    reconnect_delay: float = 5.0
    read_timeout: float = 0.5
    probe_candidates: list[tuple[str, int]] = field(
        default_factory=lambda: [(DEFAULT_SCALE_HOST, 3000)]
    )
    probe_path: str = "/peso"

    @property
    def device_url(self) -> str:
        """URL pySerial del socket TCP crudo de la báscula."""
        return f"socket://{self.scale_host}:{self.scale_port}"

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """
        Construye la configuración a partir de variables de entorno.

        Raises:
            ValueError: Si alguna variable tiene un valor inválido
        """
        candidates = os.getenv("PROBE_CANDIDATES")
        return cls(
            scale_host=os.getenv("SCALE_HOST", DEFAULT_SCALE_HOST),
            scale_port=_env_int("SCALE_TCP_PORT", 8080),
            bind_host=os.getenv("BIND_HOST", "0.0.0.0"),
            websocket_port=_env_int("WEBSOCKET_PORT", 3001),
            http_port=_env_int("HTTP_PORT", 3002),
            reconnect_delay=_env_float("SCALE_RECONNECT_DELAY", 5.0),
            probe_candidates=(
                parse_candidates(candidates)
                if candidates
                else [(DEFAULT_SCALE_HOST, 3000)]
            ),
            probe_path=os.getenv("PROBE_PATH", "/peso"),
        )


@dataclass
class MQTTConfig:
    """Configuración opcional del broker MQTT para reenviar lecturas."""
    broker: str | None = None
    port: int = 1883
    username: str | None = None
    password: str | None = None
    use_ssl: bool = False
    topic: str = "scale-bridge/weight"

    @property
    def enabled(self) -> bool:
        return bool(self.broker)

    @classmethod
    def from_env(cls) -> "MQTTConfig":
        return cls(
            broker=os.getenv("MQTT_BROKER") or None,
            port=_env_int("MQTT_PORT", 1883),
            username=os.getenv("MQTT_USERNAME"),
            password=os.getenv("MQTT_PASSWORD"),
            use_ssl=os.getenv("MQTT_USE_SSL", "false").lower() == "true",
            topic=os.getenv("MQTT_TOPIC", "scale-bridge/weight"),
        )


@dataclass(frozen=True)
class ClientConfig:
    """Destino del puente visto desde un consumidor."""
    host: str = "127.0.0.1"
    ws_port: int = 3001
    http_port: int = 3002

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{self.ws_port}"

    @property
    def weight_url(self) -> str:
        return f"http://{self.host}:{self.http_port}/weight"


def _client_config_path(config_path: str | None) -> Path:
    return Path(config_path or os.getenv("SCALE_CLIENT_CONFIG", DEFAULT_CLIENT_CONFIG_PATH))


def load_client_config(config_path: str | None = None) -> ClientConfig:
    """
    Carga la configuración persistida del cliente.

    Si el archivo no existe o está corrupto se usan los valores por defecto.
    """
    path = _client_config_path(config_path)

    if not path.exists():
        return ClientConfig()

    try:
        with open(path, "r") as f:
            data = json.load(f)
        return ClientConfig(
            host=str(data.get("host", "127.0.0.1")),
            ws_port=int(data.get("wsPort", 3001)),
            http_port=int(data.get("httpPort", 3002)),
        )
    except (OSError, ValueError, TypeError, AttributeError) as e:
        logger.error(f"No se pudo leer la configuración del cliente en {path}: {e}")
        return ClientConfig()


def save_client_config(config: ClientConfig, config_path: str | None = None) -> Path:
    """Persiste la configuración del cliente en formato JSON."""
    path = _client_config_path(config_path)
    data = asdict(config)
    payload = {
        "host": data["host"],
        "wsPort": data["ws_port"],
        "httpPort": data["http_port"],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(payload, f, indent=2)
    return path
