"""Última lectura de peso conocida."""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def isoformat(moment: datetime) -> str:
    """Formato ISO-8601 en UTC con milisegundos y sufijo Z."""
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


@dataclass(frozen=True)
class WeightReading:
    """Lectura inmutable: peso en kilogramos y momento de captura."""
    value: float
    captured_at: datetime

    @classmethod
    def now(cls, value: float) -> "WeightReading":
        return cls(value=value, captured_at=datetime.now(timezone.utc))

    @classmethod
    def zero(cls) -> "WeightReading":
        return cls(value=0.0, captured_at=EPOCH)

    def to_push(self) -> dict:
        """Mensaje enviado a los suscriptores WebSocket."""
        return {"weight": self.value}

    def to_poll(self) -> dict:
        """Respuesta del endpoint HTTP de consulta."""
        return {"weight": self.value, "lastUpdate": isoformat(self.captured_at)}


class WeightStore:
    """
    Contenedor de una sola lectura, con un único escritor (DeviceLink).

    La lectura se reemplaza completa bajo el lock, así que un lector nunca
    ve valor y fecha de actualizaciones distintas.
    """

    def __init__(self, initial: WeightReading | None = None):
        self._reading = initial or WeightReading.zero()
        self._lock = threading.Lock()

    def set(self, reading: WeightReading) -> WeightReading:
        """
        Reemplaza la lectura actual.

        Si el reloj del sistema retrocedió, el valor nuevo se guarda con la
        fecha de la lectura anterior: la fecha publicada nunca retrocede.

        Returns:
            La lectura efectivamente guardada
        """
        with self._lock:
            current = self._reading
            if reading.captured_at < current.captured_at:
                logger.debug(
                    f"Reloj del sistema retrocedió ({isoformat(reading.captured_at)} < "
                    f"{isoformat(current.captured_at)}); se conserva la fecha anterior"
                )
                reading = replace(reading, captured_at=current.captured_at)
            self._reading = reading
            return reading

    def get(self) -> WeightReading:
        with self._lock:
            return self._reading
