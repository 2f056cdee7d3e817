"""Decodificación de telegramas ASCII de la báscula."""

import logging
import math
import re
from typing import Optional

logger = logging.getLogger(__name__)

# Número con separador decimal "." o "," (formato Saturno: ST,GS,+0070,00kg)
DECIMAL_PATTERN = re.compile(r'[-+]?\d+[.,]\d+')
INTEGER_PATTERN = re.compile(r'[-+]?\d+')

# Número decimal ya terminado: lo sigue un carácter que no puede continuarlo
COMPLETE_DECIMAL = re.compile(rb'[-+]?\d+[.,]\d+(?=[^\d.,])')
TERMINATORS = re.compile(rb'[\r\n]+')

MAX_TELEGRAM_LENGTH = 256


def decode(raw: bytes | str) -> Optional[float]:
    """
    Extrae el peso de un telegrama de la báscula.
    Soporta: "ST,GS,+0070,00kg", "ST,GS,+0123.45kg", "+123", "100", etc.

    Prefiere el número con parte decimal sobre un entero si ambos existen.
    Si hay varios del mismo tipo se usa el último (lectura más reciente).

    Returns:
        El peso en kilogramos, o None si el telegrama no contiene un número
        finito
    """
    if isinstance(raw, (bytes, bytearray)):
        text = bytes(raw).decode('ascii', errors='ignore')
    else:
        text = raw

    matches = DECIMAL_PATTERN.findall(text) or INTEGER_PATTERN.findall(text)
    if not matches:
        return None

    value = float(matches[-1].replace(',', '.'))
    if not math.isfinite(value):
        logger.debug(f"Valor no finito descartado: {matches[-1][:32]}...")
        return None
    return value


class TelegramBuffer:
    """
    Separa el flujo TCP en telegramas.

    Los telegramas terminan en CR y/o LF. Si la báscula no envía
    terminadores, cada número decimal completo cierra un telegrama en
    cuanto llega. Lo que quede pendiente se entrega con flush() cuando el
    flujo queda inactivo o se cierra.
    """

    def __init__(self, max_length: int = MAX_TELEGRAM_LENGTH):
        self.max_length = max_length
        self._pending = b""

    def feed(self, chunk: bytes) -> list[bytes]:
        """Agrega bytes recibidos y retorna los telegramas completos."""
        frames = TERMINATORS.split(self._pending + chunk)
        self._pending = frames.pop()
        telegrams = [frame for frame in frames if frame.strip()]
        telegrams.extend(self._split_unterminated())

        if len(self._pending) > self.max_length:
            logger.debug(f"Telegrama sin terminador demasiado largo ({len(self._pending)} bytes)")
            telegrams.extend(self.flush())
        return telegrams

    def _split_unterminated(self) -> list[bytes]:
        telegrams = []
        start = 0
        for match in COMPLETE_DECIMAL.finditer(self._pending):
            telegrams.append(self._pending[start:match.end()])
            start = match.end()
        self._pending = self._pending[start:]
        return telegrams

    def flush(self) -> list[bytes]:
        """Entrega el telegrama parcial pendiente, si hay alguno."""
        pending, self._pending = self._pending, b""
        return [pending] if pending.strip() else []

    def clear(self) -> None:
        self._pending = b""
