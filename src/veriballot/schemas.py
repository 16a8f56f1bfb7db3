# Schemas Module
# AUTO-DOC-INDEX
#
# ES: Índice rápido
#   1) Propósito del módulo
#   2) Componentes principales
#   3) Puntos de extensión
#
# EN: Quick index
#   1) Module purpose
#   2) Main components
#   3) Extension points

"""Esquemas Pydantic para validar las respuestas del registro de boletas.

Pydantic schemas to validate ballot ledger responses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import (
    BallotRecord,
    ElectionStateSnapshot,
    ElectionStats,
    VerifiableTx,
    VoterSession,
    VoterStatus,
)


class StatePayload(BaseModel):
    """Estado actual del registro (``GET /state``).

    English: Current ledger state. Counts are optional: the ledger may embed
    them next to the transaction metadata.
    """

    model_config = ConfigDict(extra="allow")

    tx_id: Optional[int] = Field(default=None, ge=0)
    tx_hash: Optional[str] = None
    results: Dict[str, int] = Field(default_factory=dict)
    registered: int = 0
    ballots: int = 0
    voted: int = 0

    @field_validator("results", mode="before")
    @classmethod
    def null_results_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_snapshot(self) -> ElectionStateSnapshot:
        return ElectionStateSnapshot(
            tallies=dict(self.results),
            registered=self.registered,
            ballots=self.ballots,
            voted=self.voted,
            tx_id=self.tx_id,
            tx_hash=self.tx_hash,
        )


class StatsPayload(BaseModel):
    """Conteos agregados (``GET /stats``).

    English: Aggregate counts. Negative values pass through on purpose so the
    consistency verifier reports them as divergence.
    """

    results: Dict[str, int] = Field(default_factory=dict)
    registered: int = 0
    ballots: int = 0
    voted: int = 0

    @field_validator("results", mode="before")
    @classmethod
    def null_results_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_stats(self) -> ElectionStats:
        return ElectionStats(
            results={str(key): count for key, count in self.results.items()},
            registered=self.registered,
            ballots=self.ballots,
            voted=self.voted,
        )


class BallotPayload(BaseModel):
    """Boleta con su historial (``/ballot``, ``/random-ballot``).

    English: Ballot with its history. Codes stay raw (``Any``) so an
    unknown value is labelled later instead of failing validation.
    """

    ballot_id: Optional[str] = None
    vote: Any = None
    history: List[Any] = Field(default_factory=list)

    @field_validator("history", mode="before")
    @classmethod
    def null_history_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def to_record(self, fallback_ballot_id: Optional[str] = None) -> BallotRecord:
        return BallotRecord(
            vote=self.vote,
            history=tuple(self.history),
            ballot_id=self.ballot_id or fallback_ballot_id,
        )


class RegisterVoterResponse(BaseModel):
    """Respuesta de registro.

    English: Registration response.
    """

    voter_id: str = Field(min_length=1)
    ballot_id: str = Field(min_length=1)

    def to_session(self) -> VoterSession:
        return VoterSession(voter_id=self.voter_id, ballot_id=self.ballot_id, voted=False)


class VoterStatusPayload(BaseModel):
    """Estado del votante; el tiempo cero del servidor significa "nunca".

    English: Voter status; the server's zero time means "never".
    """

    approved: Optional[datetime] = None
    voted: Optional[datetime] = None

    @field_validator("approved", "voted")
    @classmethod
    def zero_time_as_none(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.year <= 1:
            return None
        return value

    def to_status(self) -> VoterStatus:
        return VoterStatus(approved_at=self.approved, voted_at=self.voted)


class TxHeaderPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None


class DualProofPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    source_tx_header: TxHeaderPayload = Field(default_factory=TxHeaderPayload, alias="sourceTxHeader")
    target_tx_header: TxHeaderPayload = Field(default_factory=TxHeaderPayload, alias="targetTxHeader")


class VerifiableTxPayload(BaseModel):
    """Prueba verificable entre dos transacciones (``GET /verifiable-tx``).

    English: Verifiable transaction between a local and a server tx. Only the
    header ids are typed; the rest of the proof is kept as-is.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    dual_proof: DualProofPayload = Field(alias="dualProof")

    def to_proof(self, raw: Dict[str, Any]) -> VerifiableTx:
        return VerifiableTx(
            source_tx_id=self.dual_proof.source_tx_header.id,
            target_tx_id=self.dual_proof.target_tx_header.id,
            raw=raw,
        )
