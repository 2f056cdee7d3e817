#!/usr/bin/env python3
"""
Cliente de prueba del puente: muestra el peso y el estado de la conexión.
"""

import logging
import sys
import time

from scale_bridge.client import ScaleConnectionManager, check_connection
from scale_bridge.config import ClientConfig, load_client_config


def on_weight(weight: float):
    """Callback de peso recibido."""
    print(f"⚖️  Peso: {weight:.2f} kg")


def on_status(state, transport, message):
    """Callback de cambio de estado."""
    print(f"📡 Estado: {state.value} (transporte: {transport.value})")
    if message:
        print(f"❌ {message}")


def main():
    """Función principal."""
    import argparse

    saved = load_client_config()
    parser = argparse.ArgumentParser(description="Cliente de prueba del puente de báscula")
    parser.add_argument("--host", default=saved.host, help=f"Host del puente (default: {saved.host})")
    parser.add_argument("--ws-port", type=int, default=saved.ws_port, help="Puerto WebSocket")
    parser.add_argument("--http-port", type=int, default=saved.http_port, help="Puerto HTTP")
    parser.add_argument("--seconds", type=float, default=30, help="Duración de la prueba")
    parser.add_argument("--save", action="store_true", help="Guardar la configuración usada")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    config = ClientConfig(host=args.host, ws_port=args.ws_port, http_port=args.http_port)

    print("=== Cliente de Prueba del Puente ===\n")
    ok, message = check_connection(config)
    print(f"Prueba HTTP: {message}\n")

    manager = ScaleConnectionManager(config, on_weight=on_weight, on_status=on_status)
    if args.save:
        manager.save_config(config)
    else:
        manager.connect()

    try:
        time.sleep(args.seconds)
    except KeyboardInterrupt:
        print("\nInterrumpido")
    finally:
        manager.disconnect()

    print("\n✅ Test completado")
    sys.exit(0 if manager.weight or ok else 1)


if __name__ == "__main__":
    main()
