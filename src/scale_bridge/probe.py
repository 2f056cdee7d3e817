"""Consulta heredada: busca el peso en servidores HTTP candidatos."""

import logging
from typing import Iterable

import requests

from .telegram import decode

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 1.2  # segundos por candidato


def probe_weight(
    candidates: Iterable[tuple[str, int]],
    path: str = "/peso",
    timeout: float = PROBE_TIMEOUT,
) -> dict:
    """
    Prueba los candidatos host:puerto en orden y extrae el peso del primero
    que responda.

    Nunca lanza excepciones: los fallos se reportan en la clave "error".

    Returns:
        {"peso": float, "raw": str} o, si hubo un problema, además "error"
    """
    attempted = []
    last_error = None

    for host, port in candidates:
        endpoint = f"http://{host}:{port}{path}"
        attempted.append(endpoint)
        logger.info(f"[peso] Intentando endpoint: {endpoint}")

        try:
            response = requests.get(
                endpoint,
                timeout=timeout,
                headers={"Cache-Control": "no-store"},
            )
        except requests.RequestException as e:
            logger.warning(f"⚠️ Sin respuesta de {endpoint}: {e}")
            last_error = str(e)
            continue

        if not response.ok:
            logger.warning(f"⚠️ {endpoint} respondió HTTP {response.status_code}")
            last_error = f"HTTP {response.status_code}"
            continue

        text = response.text
        weight = decode(text)
        if weight is None:
            return {"peso": 0, "raw": text, "error": "Formato de peso no reconocido"}
        return {"peso": weight, "raw": text}

    if not attempted:
        return {"peso": 0, "error": "No hay endpoints de báscula configurados"}

    message = (
        f"No conectado a la báscula en {', '.join(attempted)}. "
        f"Verifica la IP, el puerto y que el servidor de la báscula esté activo."
    )
    if last_error:
        message = f"{message} ({last_error})"
    return {"peso": 0, "error": message}
