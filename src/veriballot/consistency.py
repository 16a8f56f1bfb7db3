"""Verificación de consistencia entre snapshots del registro.

English:
    Consistency verification between ledger snapshots. The proof checker is an
    injected capability with an explicit ready/not-ready lifecycle; while it is
    not ready every check is skipped rather than failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Protocol, Tuple

from .errors import NotFoundError, ProofCheckerUnavailable
from .models import ElectionStateSnapshot, VerifiableTx

if TYPE_CHECKING:
    from .ledger_client import LedgerClient

logger = logging.getLogger(__name__)

PROOF_REJECTED = "proof checker rejected the fresh snapshot"
TX_NOT_FOUND = "verification error: one of the 2 tx IDs was not found on server"


class ConsistencyStatus(str, Enum):
    """Resultado de una verificación.

    English: Verification result.
    """

    CONSISTENT = "consistent"
    DIVERGENT = "divergent"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ConsistencyOutcome:
    """Resultado de comparar (o validar) snapshots.

    English: Outcome of comparing (or structurally validating) snapshots.
    ``structural`` is true when no prior snapshot was available.
    """

    status: ConsistencyStatus
    reasons: Tuple[str, ...] = ()
    structural: bool = False
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def consistent(cls, *, structural: bool = False) -> "ConsistencyOutcome":
        return cls(ConsistencyStatus.CONSISTENT, structural=structural)

    @classmethod
    def divergent(cls, reasons: List[str], *, structural: bool = False) -> "ConsistencyOutcome":
        return cls(ConsistencyStatus.DIVERGENT, tuple(reasons), structural=structural)

    @classmethod
    def skipped(cls, reason: str) -> "ConsistencyOutcome":
        return cls(ConsistencyStatus.SKIPPED, (reason,))

    @property
    def is_consistent(self) -> bool:
        return self.status is ConsistencyStatus.CONSISTENT

    @property
    def is_divergent(self) -> bool:
        return self.status is ConsistencyStatus.DIVERGENT

    @property
    def is_skipped(self) -> bool:
        return self.status is ConsistencyStatus.SKIPPED


class ProofChecker(Protocol):
    """Capacidad opaca: dado uno o dos snapshots devuelve un veredicto.

    English: Opaque capability: given one or two snapshots, and the ledger's
    dual proof between them when one was fetched, return a verdict.
    """

    def check(
        self,
        fresh: ElectionStateSnapshot,
        prior: Optional[ElectionStateSnapshot] = None,
        proof: Optional[VerifiableTx] = None,
    ) -> bool:
        ...


class ProofCheckerHandle:
    """Ciclo de vida explícito del verificador de pruebas.

    English: Explicit lifecycle for the proof checker. Not ready until
    :meth:`mark_ready` hands it a checker.
    """

    def __init__(self, checker: Optional[ProofChecker] = None) -> None:
        self._checker = checker

    @property
    def ready(self) -> bool:
        return self._checker is not None

    def mark_ready(self, checker: ProofChecker) -> None:
        self._checker = checker
        logger.info("proof_checker_ready checker=%s", type(checker).__name__)

    def mark_unavailable(self) -> None:
        self._checker = None
        logger.info("proof_checker_unavailable")

    def require(self) -> ProofChecker:
        if self._checker is None:
            raise ProofCheckerUnavailable("proof checker is not initialized yet")
        return self._checker


class InvariantProofChecker:
    """Verificador incorporado basado en invariantes.

    English: Built-in checker. A snapshot passes when its counts are
    well-formed; against a prior snapshot, the ledger transaction id must not
    move backward and an unchanged id must keep its hash. A dual proof, when
    given, must link exactly the prior and fresh transaction ids.
    """

    def check(
        self,
        fresh: ElectionStateSnapshot,
        prior: Optional[ElectionStateSnapshot] = None,
        proof: Optional[VerifiableTx] = None,
    ) -> bool:
        if fresh.invariant_violations():
            return False
        if prior is None or fresh.tx_id is None or prior.tx_id is None:
            return True
        if fresh.tx_id < prior.tx_id:
            return False
        if proof is not None and not proof.covers(prior.tx_id, fresh.tx_id):
            return False
        if fresh.tx_id == prior.tx_id and prior.tx_hash and fresh.tx_hash:
            return fresh.tx_hash == prior.tx_hash
        return True


def _backward_moves(prior: ElectionStateSnapshot, fresh: ElectionStateSnapshot) -> List[str]:
    reasons: List[str] = []
    for candidate in sorted(prior.tallies):
        before = prior.tallies[candidate]
        after = fresh.tallies.get(candidate, 0)
        if after < before:
            reasons.append(f"tally for candidate {candidate} moved backward: {before} -> {after}")
    for name in ("registered", "ballots", "voted"):
        before = getattr(prior, name)
        after = getattr(fresh, name)
        if after < before:
            reasons.append(f"{name} count moved backward: {before} -> {after}")
    return reasons


class ConsistencyVerifier:
    """Compara un snapshot previo con uno nuevo. Sin estado entre llamadas.

    English: Compare a prior snapshot against a fresh one. Stateless between
    calls; callers supply both snapshots every time. With a ``client`` the
    ledger's dual proof between both transactions is fetched and handed to
    the proof checker.
    """

    def __init__(self, proof_checker: ProofCheckerHandle, client: Optional["LedgerClient"] = None) -> None:
        self._proof_checker = proof_checker
        self._client = client

    async def verify_remote(
        self, prior: Optional[ElectionStateSnapshot], fresh: ElectionStateSnapshot
    ) -> ConsistencyOutcome:
        """Verifica usando la prueba dual del registro.

        English: Verify with the ledger's dual proof between the prior and the
        fresh transaction. Falls back to :meth:`verify` when there is no
        client, no prior tx id or no ready checker. A 404 for either id is a
        divergence; transport errors propagate to the caller's retry policy.
        """
        if (
            self._client is None
            or prior is None
            or prior.tx_id is None
            or fresh.tx_id is None
            or not self._proof_checker.ready
        ):
            return self.verify(prior, fresh)
        try:
            proof = await self._client.fetch_verifiable_tx(fresh.tx_id, prior.tx_id)
        except NotFoundError:
            reasons = [*_backward_moves(prior, fresh), TX_NOT_FOUND]
            logger.warning(
                "consistency_divergent local_tx=%s server_tx=%s reasons=%s",
                prior.tx_id,
                fresh.tx_id,
                "; ".join(reasons),
            )
            return ConsistencyOutcome.divergent(reasons)
        return self.verify(prior, fresh, proof)

    def verify(
        self,
        prior: Optional[ElectionStateSnapshot],
        fresh: ElectionStateSnapshot,
        proof: Optional[VerifiableTx] = None,
    ) -> ConsistencyOutcome:
        if prior is None:
            return self.verify_structural(fresh)
        try:
            checker = self._proof_checker.require()
        except ProofCheckerUnavailable as exc:
            logger.debug("consistency_skipped reason=%s", exc)
            return ConsistencyOutcome.skipped(str(exc))

        reasons = _backward_moves(prior, fresh)
        if not checker.check(fresh, prior, proof):
            reasons.append(PROOF_REJECTED)
        if reasons:
            logger.warning("consistency_divergent reasons=%s", "; ".join(reasons))
            return ConsistencyOutcome.divergent(reasons)
        return ConsistencyOutcome.consistent()

    def verify_structural(self, fresh: ElectionStateSnapshot) -> ConsistencyOutcome:
        """Valida un único snapshot (primera ejecución).

        English: Validate a single snapshot (first run, nothing to compare).
        """
        try:
            checker = self._proof_checker.require()
        except ProofCheckerUnavailable as exc:
            logger.debug("consistency_skipped reason=%s", exc)
            return ConsistencyOutcome.skipped(str(exc))

        if checker.check(fresh):
            return ConsistencyOutcome.consistent(structural=True)
        reasons = [PROOF_REJECTED, *fresh.invariant_violations()]
        logger.warning("consistency_structural_divergent reasons=%s", "; ".join(reasons))
        return ConsistencyOutcome.divergent(reasons, structural=True)
