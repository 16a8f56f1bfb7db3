"""Jerarquía de errores del cliente del registro de boletas.

English:
    Error hierarchy for the ballot ledger client. ``InvalidVoteCode``,
    ``Divergent`` and ``TamperDetected`` are reported values, not exceptions;
    see :mod:`veriballot.models`, :mod:`veriballot.consistency` and
    :mod:`veriballot.audit`.
"""

from __future__ import annotations

from typing import Optional


class LedgerError(Exception):
    """Error base del cliente.

    English: Base client error.
    """


class TransportError(LedgerError):
    """No se obtuvo respuesta (red, DNS, timeout).

    English: No response was obtained (network, DNS, timeout).
    """

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class RejectedError(LedgerError):
    """El servidor rechazó explícitamente la solicitud.

    English: The server explicitly declined the request. ``message`` holds the
    rejection reason as the ledger wrote it, without the status-text prefix.
    """

    def __init__(self, status_code: int, body: str, message: Optional[str] = None) -> None:
        self.status_code = status_code
        self.body = body
        self.message = message if message is not None else _rejection_reason(body)
        super().__init__(self.message or f"ledger rejected request with status {status_code}")


class NotFoundError(RejectedError):
    """Recurso inexistente (p. ej. boleta desconocida).

    English: Missing resource (e.g. unknown ballot).
    """


class MalformedResponseError(RejectedError):
    """Respuesta 2xx cuyo cuerpo no cumple el esquema esperado.

    English: 2xx response whose body does not match the expected schema.
    """


class MissingIdentifiers(LedgerError):
    """Falta el id de votante o de boleta; no se contacta al servidor.

    English: Voter or ballot id missing; the server is never contacted.
    """


class AlreadyVoted(LedgerError):
    """La sesión ya emitió su voto.

    English: The session has already cast its vote.
    """


class ProofCheckerUnavailable(LedgerError):
    """El verificador de pruebas aún no está listo (transitorio).

    English: The proof checker is not ready yet (transient, the cycle is skipped).
    """


class StorageError(LedgerError):
    """Error de almacenamiento local persistente.

    English: Durable local storage error.
    """


def _rejection_reason(body: str) -> str:
    # The ledger writes "<Status Text>: <reason>".
    text = (body or "").strip()
    head, sep, tail = text.partition(": ")
    if sep and head and not any(char.isdigit() for char in head) and len(head) <= 40:
        return tail.strip()
    return text
