#!/usr/bin/env python3
"""
Simulador de báscula para pruebas.
Este script abre un servidor TCP que envía telegramas como una báscula real.
"""

import random
import socket
import sys
import time
from argparse import ArgumentParser, Namespace


def format_telegram(weight: float) -> bytes:
    """Formato Saturno: ST,GS,+0070,00kg con coma decimal."""
    sign = "-" if weight < 0 else "+"
    integer, decimals = f"{abs(weight):07.2f}".split(".")
    return f"ST,GS,{sign}{integer},{decimals}kg\r\n".encode("ascii")


def simulate_scale(conn: socket.socket, random_mode: bool, fixed_weight: float, garbage: bool):
    """
    Envía un telegrama por segundo hasta que el cliente se desconecte.

    Args:
        conn: Socket del cliente conectado
        random_mode: Pesos aleatorios en lugar de un peso fijo
        fixed_weight: Peso fijo a enviar
        garbage: Intercalar telegramas ilegibles
    """
    while True:
        if random_mode:
            # Generar peso aleatorio entre 0 y 30000 kg
            weight = random.uniform(0, 30000)
        else:
            weight = fixed_weight

        message = format_telegram(weight)
        if garbage and random.random() < 0.2:
            message = b"\x02ST,GS,??\r\n"

        conn.sendall(message)
        print(f"Enviado: {message!r}")
        time.sleep(1)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description="Simulador de báscula TCP para pruebas.")
    parser.add_argument("--host", default="127.0.0.1", help="Dirección de escucha.")
    parser.add_argument("--port", type=int, default=8080, help="Puerto TCP. Por defecto 8080.")
    parser.add_argument(
        "--random",
        action="store_true",
        help="Si se establece, envía pesos aleatorios en lugar de un peso fijo.",
    )
    parser.add_argument(
        "--weight",
        type=float,
        default=70.0,
        help="Peso fijo a enviar cuando no se usa modo aleatorio. Por defecto 70 kg.",
    )
    parser.add_argument(
        "--garbage",
        action="store_true",
        help="Intercala telegramas sin peso para probar la tolerancia del puente.",
    )
    return parser


def parse_args(argv: list[str]) -> Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    """Función principal."""
    args = parse_args(argv if argv is not None else sys.argv[1:])

    print("=== Simulador de Báscula ===\n")
    print("Configura el puente con:")
    print(f"  export SCALE_HOST={args.host}")
    print(f"  export SCALE_TCP_PORT={args.port}\n")
    print("Presiona Ctrl+C para detener\n")

    with socket.create_server((args.host, args.port)) as server:
        try:
            while True:
                conn, address = server.accept()
                print(f"Puente conectado desde {address[0]}:{address[1]}")
                with conn:
                    try:
                        simulate_scale(conn, args.random, args.weight, args.garbage)
                    except (BrokenPipeError, ConnectionResetError):
                        print("Puente desconectado, esperando nueva conexión...")
        except KeyboardInterrupt:
            print("\nSimulador detenido")


if __name__ == "__main__":
    main()
