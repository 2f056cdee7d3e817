"""Puente de comunicación entre una báscula TCP y clientes web."""

from .broadcast import BroadcastHub, PushServer, Subscriber
from .client import ClientState, ScaleConnectionManager, TransportKind, check_connection
from .config import BridgeConfig, ClientConfig, MQTTConfig, load_client_config, save_client_config
from .device_link import DeviceLink, LinkState
from .main import ScaleBridgeService, main
from .mqtt_relay import MQTTRelay
from .poll import PollServer, create_app
from .probe import probe_weight
from .store import WeightReading, WeightStore
from .telegram import TelegramBuffer, decode

__version__ = "0.1.0"

__all__ = [
    "BridgeConfig",
    "BroadcastHub",
    "ClientConfig",
    "ClientState",
    "DeviceLink",
    "LinkState",
    "MQTTConfig",
    "MQTTRelay",
    "PollServer",
    "PushServer",
    "ScaleBridgeService",
    "ScaleConnectionManager",
    "Subscriber",
    "TelegramBuffer",
    "TransportKind",
    "WeightReading",
    "WeightStore",
    "check_connection",
    "create_app",
    "decode",
    "load_client_config",
    "main",
    "probe_weight",
    "save_client_config",
]
