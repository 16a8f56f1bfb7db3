"""Cliente HTTP tipado para el registro de boletas.

English:
    Typed HTTP client for the ballot ledger. Every operation issues exactly one
    request and returns a typed value, or raises ``TransportError`` (no
    response) or ``RejectedError`` (non-success response). No retries here;
    the poll tasks own the retry policy.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from . import __version__
from .errors import MalformedResponseError, NotFoundError, RejectedError, TransportError
from .models import BallotRecord, ElectionStateSnapshot, ElectionStats, VerifiableTx, VoteCode, VoterSession, VoterStatus
from .schemas import (
    BallotPayload,
    RegisterVoterResponse,
    StatePayload,
    StatsPayload,
    VerifiableTxPayload,
    VoterStatusPayload,
)

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

DEFAULT_TIMEOUT_SECONDS = 5.0


class LedgerClient:
    """Envoltorio tipado de los endpoints del registro.

    English: Typed wrapper around the ledger endpoints. Usable as an async
    context manager; an injected ``httpx.AsyncClient`` is never closed here.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        auth: Optional[Tuple[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._auth = auth
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Any) -> "LedgerClient":
        return cls(
            settings.LEDGER_URL,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            auth=settings.basic_auth,
        )

    @property
    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                auth=self._auth,
                headers={"User-Agent": f"veriballot/{__version__}"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        start = time.monotonic()
        try:
            response = await self._http.request(method, url, params=params, json=payload)
        except httpx.RequestError as exc:
            logger.warning(
                "ledger_transport_error method=%s path=%s elapsed_seconds=%.3f error=%s",
                method,
                path,
                time.monotonic() - start,
                exc,
            )
            raise TransportError(f"{method} {url} failed: {exc}", url=url) from exc

        elapsed = time.monotonic() - start
        if response.is_success:
            logger.debug(
                "ledger_response method=%s path=%s status=%s elapsed_seconds=%.3f",
                method,
                path,
                response.status_code,
                elapsed,
            )
            return response

        body = response.text
        logger.info(
            "ledger_rejected method=%s path=%s status=%s body=%s",
            method,
            path,
            response.status_code,
            body.strip(),
        )
        if response.status_code == 404:
            raise NotFoundError(response.status_code, body)
        raise RejectedError(response.status_code, body)

    @staticmethod
    def _decode(response: httpx.Response, schema: Type[SchemaT]) -> SchemaT:
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                response.status_code, response.text, "response is not valid JSON"
            ) from exc
        try:
            return schema.model_validate(payload)
        except ValidationError as exc:
            raise MalformedResponseError(
                response.status_code,
                response.text,
                f"unexpected {schema.__name__} shape: {exc.error_count()} error(s)",
            ) from exc

    async def fetch_state(self) -> ElectionStateSnapshot:
        """Lee el estado actual del registro.

        English: Read the current ledger state (transaction metadata, plus
        counts when the ledger embeds them).
        """
        response = await self._request("GET", "/state")
        return self._decode(response, StatePayload).to_snapshot()

    async def fetch_stats(self) -> ElectionStats:
        response = await self._request("GET", "/stats")
        return self._decode(response, StatsPayload).to_stats()

    async def fetch_ballot(self, ballot_id: str) -> BallotRecord:
        response = await self._request("GET", "/ballot", params={"ballot_id": ballot_id})
        return self._decode(response, BallotPayload).to_record(fallback_ballot_id=ballot_id)

    async def fetch_random_ballot(self) -> BallotRecord:
        """Boleta aleatoria con historial completo.

        English: A random ballot with its full history; the record carries its
        ``ballot_id``.
        """
        response = await self._request("GET", "/random-ballot")
        return self._decode(response, BallotPayload).to_record()

    async def fetch_voter_status(self, voter_id: str) -> VoterStatus:
        response = await self._request("GET", "/voter-status", params={"voter_id": voter_id})
        return self._decode(response, VoterStatusPayload).to_status()

    async def fetch_verifiable_tx(self, server_tx: int, local_tx: int) -> VerifiableTx:
        """Prueba dual entre la transacción local y la del servidor.

        English: Dual proof between the locally verified tx and the server tx.
        A 404 means one of the two ids is unknown to the ledger and raises
        ``NotFoundError``.
        """
        response = await self._request(
            "GET",
            "/verifiable-tx",
            params={"server_tx": str(server_tx), "local_tx": str(local_tx)},
        )
        return self._decode(response, VerifiableTxPayload).to_proof(response.json())

    async def register_voter(self, citizen_id: str, name: str, address: str, email: str) -> VoterSession:
        """Registra un votante y devuelve su sesión.

        English: Register a voter. Rejections (already registered, invalid
        citizen id, invalid email) raise ``RejectedError`` with the server's
        reason.
        """
        response = await self._request(
            "POST",
            "/register-voter",
            payload={
                "citizen_id": citizen_id,
                "name": name,
                "address": address,
                "email": email,
            },
        )
        return self._decode(response, RegisterVoterResponse).to_session()

    async def cast_vote(self, voter_id: str, ballot_id: str, candidate: VoteCode | int) -> None:
        await self._request(
            "POST",
            "/vote",
            payload={"voter_id": voter_id, "ballot_id": ballot_id, "vote": int(candidate)},
        )
