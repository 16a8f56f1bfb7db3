"""Modelo de dominio del cliente: códigos de voto, snapshots, sesiones y boletas.

English:
    Client domain model: vote codes, election snapshots, voter sessions and
    ballot records. Every vote code the ledger reports goes through
    :class:`VoteCode`, the single mapping from raw integers to labels.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

INVALID_LABEL = "Invalid"
NOT_CAST_LABEL = "Not cast"
REGISTERED_LABEL = "Registered"


class VoteCode(int, Enum):
    """Códigos de voto reconocidos por el registro.

    English: Vote codes recognised by the ledger. ``0`` means the ballot was
    issued but not cast yet.
    """

    REGISTERED = 0
    CANDIDATE_A = 1
    CANDIDATE_B = 2

    @classmethod
    def parse(cls, raw: Any) -> Optional["VoteCode"]:
        """Return the matching member, or ``None`` for anything unknown."""
        if isinstance(raw, bool):
            return None
        if isinstance(raw, str):
            raw = raw.strip()
            if not raw.isdigit():
                return None
            raw = int(raw)
        if not isinstance(raw, int):
            return None
        try:
            return cls(raw)
        except ValueError:
            return None

    @property
    def is_candidate(self) -> bool:
        return self is not VoteCode.REGISTERED


CANDIDATE_CODES: Tuple[VoteCode, ...] = (VoteCode.CANDIDATE_A, VoteCode.CANDIDATE_B)

DEFAULT_CANDIDATE_NAMES: Dict[int, str] = {
    VoteCode.CANDIDATE_A.value: "Candidate A",
    VoteCode.CANDIDATE_B.value: "Candidate B",
}


def candidate_name(code: VoteCode, candidate_names: Optional[Mapping[int, str]] = None) -> str:
    names = candidate_names or DEFAULT_CANDIDATE_NAMES
    return names.get(code.value) or DEFAULT_CANDIDATE_NAMES[code.value]


def vote_label(raw: Any, candidate_names: Optional[Mapping[int, str]] = None) -> str:
    """Etiqueta de un voto actual; total sobre cualquier entrada.

    English: Label for a current vote value. Total over any input: unknown
    codes become ``"Invalid"`` instead of a stringified integer.
    """
    code = VoteCode.parse(raw)
    if code is None:
        return INVALID_LABEL
    if code is VoteCode.REGISTERED:
        return NOT_CAST_LABEL
    return candidate_name(code, candidate_names)


class EntryKind(str, Enum):
    """Tipo de entrada de historial.

    English: Ballot history entry kind.
    """

    REGISTERED = "registered"
    CAST = "cast"
    INVALID = "invalid"


@dataclass(frozen=True)
class HistoryEntry:
    """Entrada de historial de una boleta ya traducida a etiqueta.

    English: One ballot history entry translated to its display label.
    """

    code: Any
    kind: EntryKind
    label: str

    @classmethod
    def from_code(
        cls, raw: Any, candidate_names: Optional[Mapping[int, str]] = None
    ) -> "HistoryEntry":
        code = VoteCode.parse(raw)
        if code is None:
            return cls(code=raw, kind=EntryKind.INVALID, label=INVALID_LABEL)
        if code is VoteCode.REGISTERED:
            return cls(code=code.value, kind=EntryKind.REGISTERED, label=REGISTERED_LABEL)
        return cls(
            code=code.value,
            kind=EntryKind.CAST,
            label=f"Cast for {candidate_name(code, candidate_names)}",
        )


@dataclass(frozen=True)
class BallotRecord:
    """Boleta tal como la reporta el registro.

    English: A ballot as reported by the ledger. ``history`` keeps the raw
    codes in ledger order; the client never mutates it.
    """

    vote: Any
    history: Tuple[Any, ...] = ()
    ballot_id: Optional[str] = None

    def entries(self, candidate_names: Optional[Mapping[int, str]] = None) -> Tuple[HistoryEntry, ...]:
        return tuple(HistoryEntry.from_code(code, candidate_names) for code in self.history)

    def current_label(self, candidate_names: Optional[Mapping[int, str]] = None) -> str:
        return vote_label(self.vote, candidate_names)

    @property
    def is_cast(self) -> bool:
        code = VoteCode.parse(self.vote)
        return code is not None and code.is_candidate


@dataclass(frozen=True)
class ElectionStats:
    """Conteos agregados de ``/stats``.

    English: Aggregate counts from ``/stats``. ``results`` is keyed by the
    candidate code as a string, the way the ledger encodes it in JSON.
    """

    results: Dict[str, int] = field(default_factory=dict)
    registered: int = 0
    ballots: int = 0
    voted: int = 0

    def tally_for(self, code: VoteCode | int) -> int:
        return int(self.results.get(str(int(code)), 0))


@dataclass(frozen=True)
class ElectionStateSnapshot:
    """Lectura puntual del estado de la elección.

    Atributos:
        tallies: código de candidato (texto) → votos.
        registered: votantes registrados.
        ballots: boletas emitidas.
        voted: votantes marcados como votados.
        tx_id / tx_hash: metadatos opacos para el verificador de pruebas.

    English:
        Point-in-time read of election state. Immutable; each poll builds a
        new instance. Invariant: tallies are non-negative and
        ``sum(tallies) <= ballots <= registered``.
    """

    tallies: Dict[str, int] = field(default_factory=dict)
    registered: int = 0
    ballots: int = 0
    voted: int = 0
    tx_id: Optional[int] = None
    tx_hash: Optional[str] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_cast(self) -> int:
        return sum(self.tallies.values())

    def invariant_violations(self) -> List[str]:
        """Lista las invariantes rotas sin lanzar excepciones.

        English: List broken invariants without raising.
        """
        violations: List[str] = []
        for candidate, count in sorted(self.tallies.items()):
            if not isinstance(count, int) or isinstance(count, bool) or count < 0:
                violations.append(f"tally for candidate {candidate} is not a non-negative integer: {count!r}")
        for name in ("registered", "ballots", "voted"):
            value = getattr(self, name)
            if value < 0:
                violations.append(f"{name} count is negative: {value}")
        if not violations:
            if self.total_cast > self.ballots:
                violations.append(f"sum of tallies ({self.total_cast}) exceeds ballot count ({self.ballots})")
            if self.ballots > self.registered:
                violations.append(f"ballot count ({self.ballots}) exceeds registered count ({self.registered})")
        return violations

    def with_stats(self, stats: ElectionStats) -> "ElectionStateSnapshot":
        return replace(
            self,
            tallies=dict(stats.results),
            registered=stats.registered,
            ballots=stats.ballots,
            voted=stats.voted,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tallies": dict(self.tallies),
            "registered": self.registered,
            "ballots": self.ballots,
            "voted": self.voted,
            "tx_id": self.tx_id,
            "tx_hash": self.tx_hash,
            "fetched_at": self.fetched_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ElectionStateSnapshot":
        try:
            fetched_at = datetime.fromisoformat(data["fetched_at"])
            return cls(
                tallies={str(key): int(value) for key, value in dict(data.get("tallies") or {}).items()},
                registered=int(data.get("registered", 0)),
                ballots=int(data.get("ballots", 0)),
                voted=int(data.get("voted", 0)),
                tx_id=None if data.get("tx_id") is None else int(data["tx_id"]),
                tx_hash=data.get("tx_hash"),
                fetched_at=fetched_at,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid snapshot record: {exc}") from exc


@dataclass(frozen=True)
class VoterSession:
    """Sesión del votante; nunca guarda el valor del voto.

    English: Voter session. Never holds the vote value; ``voted`` is the only
    field that changes after creation, exactly once.
    """

    voter_id: str
    ballot_id: str
    voted: bool = False

    def mark_voted(self) -> "VoterSession":
        return replace(self, voted=True)

    def to_dict(self) -> Dict[str, Any]:
        return {"voter_id": self.voter_id, "ballot_id": self.ballot_id, "voted": self.voted}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VoterSession":
        try:
            voter_id = str(data["voter_id"])
            ballot_id = str(data["ballot_id"])
        except KeyError as exc:
            raise ValueError(f"Missing session field: {exc}") from exc
        voted = data.get("voted", False)
        if not isinstance(voted, bool):
            raise ValueError(f"Session field 'voted' must be a boolean, got {voted!r}")
        return cls(voter_id=voter_id, ballot_id=ballot_id, voted=voted)


@dataclass(frozen=True)
class VoterStatus:
    """Estado de registro/voto de un votante (``/voter-status``).

    English: Registration/vote status of a voter.
    """

    approved_at: Optional[datetime] = None
    voted_at: Optional[datetime] = None

    @property
    def approved(self) -> bool:
        return self.approved_at is not None

    @property
    def has_voted(self) -> bool:
        return self.voted_at is not None


@dataclass(frozen=True)
class VerifiableTx:
    """Prueba dual entre dos transacciones del registro (``/verifiable-tx``).

    English: Dual proof linking two ledger transactions. ``source_tx_id`` and
    ``target_tx_id`` are the ids the proof covers; ``raw`` keeps the full body
    for checkers that verify the proof cryptographically.
    """

    source_tx_id: Optional[int]
    target_tx_id: Optional[int]
    raw: Dict[str, Any] = field(default_factory=dict)

    def covers(self, local_tx: int, server_tx: int) -> bool:
        return {self.source_tx_id, self.target_tx_id} == {local_tx, server_tx}
