"""Pruebas del verificador de consistencia.

Tests for the consistency verifier.
"""

import asyncio

import pytest

from conftest import FakeLedger
from veriballot.consistency import (
    PROOF_REJECTED,
    TX_NOT_FOUND,
    ConsistencyStatus,
    ConsistencyVerifier,
    InvariantProofChecker,
    ProofCheckerHandle,
)
from veriballot.errors import NotFoundError, TransportError
from veriballot.models import ElectionStateSnapshot, VerifiableTx


def _snapshot(a=1, b=1, registered=5, ballots=2, voted=2, tx_id=1, tx_hash="h1"):
    return ElectionStateSnapshot(
        tallies={"1": a, "2": b},
        registered=registered,
        ballots=ballots,
        voted=voted,
        tx_id=tx_id,
        tx_hash=tx_hash,
    )


def _verifier():
    return ConsistencyVerifier(ProofCheckerHandle(InvariantProofChecker()))


class RejectingChecker:
    def check(self, fresh, prior=None, proof=None):
        return False


def test_monotonic_growth_is_consistent():
    """Español: Conteos que solo crecen.

    English: Counts that only grow are consistent.
    """
    prior = _snapshot()
    fresh = _snapshot(a=2, ballots=3, voted=3, tx_id=2, tx_hash="h2")

    outcome = _verifier().verify(prior, fresh)

    assert outcome.status is ConsistencyStatus.CONSISTENT
    assert outcome.reasons == ()
    assert not outcome.structural


def test_unchanged_state_is_consistent():
    assert _verifier().verify(_snapshot(), _snapshot()).is_consistent


def test_backward_tally_is_divergent():
    prior = _snapshot(a=3, ballots=4, voted=4)
    fresh = _snapshot(a=2, ballots=4, voted=4, tx_id=2, tx_hash="h2")

    outcome = _verifier().verify(prior, fresh)

    assert outcome.is_divergent
    assert outcome.reasons == ("tally for candidate 1 moved backward: 3 -> 2",)


def test_candidate_missing_from_fresh_counts_as_zero():
    prior = _snapshot(a=1, b=1)
    fresh = ElectionStateSnapshot(tallies={"1": 1}, registered=5, ballots=2, voted=2, tx_id=2)

    outcome = _verifier().verify(prior, fresh)

    assert outcome.is_divergent
    assert "tally for candidate 2 moved backward: 1 -> 0" in outcome.reasons


def test_backward_registered_count_is_divergent():
    outcome = _verifier().verify(_snapshot(registered=5), _snapshot(registered=4, tx_id=2))

    assert outcome.reasons == ("registered count moved backward: 5 -> 4",)


def test_backward_transaction_id_is_rejected_by_proof_checker():
    outcome = _verifier().verify(_snapshot(tx_id=5), _snapshot(tx_id=4))

    assert outcome.is_divergent
    assert outcome.reasons == (PROOF_REJECTED,)


def test_same_transaction_with_new_hash_is_rejected():
    outcome = _verifier().verify(_snapshot(tx_id=5, tx_hash="aa"), _snapshot(tx_id=5, tx_hash="bb"))

    assert outcome.reasons == (PROOF_REJECTED,)


def test_injected_checker_verdict_is_honoured():
    verifier = ConsistencyVerifier(ProofCheckerHandle(RejectingChecker()))

    outcome = verifier.verify(_snapshot(), _snapshot(a=2, ballots=3, voted=3, tx_id=2))

    assert outcome.is_divergent
    assert outcome.reasons == (PROOF_REJECTED,)


def test_checker_not_ready_skips_instead_of_failing():
    """Español: Sin verificador listo, el ciclo se omite.

    English: Without a ready checker the cycle is skipped, not failed.
    """
    handle = ProofCheckerHandle()
    verifier = ConsistencyVerifier(handle)

    outcome = verifier.verify(_snapshot(a=3), _snapshot(a=0))

    assert outcome.status is ConsistencyStatus.SKIPPED
    assert not handle.ready

    handle.mark_ready(InvariantProofChecker())
    assert verifier.verify(_snapshot(a=3), _snapshot(a=0)).is_divergent

    handle.mark_unavailable()
    assert verifier.verify(_snapshot(), _snapshot()).is_skipped


def test_first_run_is_structural_only():
    outcome = _verifier().verify(None, _snapshot())

    assert outcome.is_consistent
    assert outcome.structural


def test_first_run_reports_broken_invariants():
    fresh = _snapshot(a=4, b=4, registered=10, ballots=5)

    outcome = _verifier().verify(None, fresh)

    assert outcome.is_divergent
    assert outcome.structural
    assert outcome.reasons[0] == PROOF_REJECTED
    assert "sum of tallies (8) exceeds ballot count (5)" in outcome.reasons


def test_verifier_is_stateless_between_calls():
    verifier = _verifier()
    prior = _snapshot(a=3)
    fresh = _snapshot(a=1)

    first = verifier.verify(prior, fresh)
    second = verifier.verify(prior, fresh)

    assert first.reasons == second.reasons
    assert verifier.verify(fresh, _snapshot(a=2, ballots=3, voted=3, tx_id=2)).is_consistent


def _remote_verifier(ledger):
    return ConsistencyVerifier(ProofCheckerHandle(InvariantProofChecker()), client=ledger)


def test_remote_verification_fetches_dual_proof():
    """Español: La prueba dual enlaza la transacción local con la del servidor.

    English: The dual proof links the local tx with the server tx.
    """
    ledger = FakeLedger(proofs=[VerifiableTx(source_tx_id=1, target_tx_id=2)])
    prior = _snapshot()
    fresh = _snapshot(a=2, ballots=3, voted=3, tx_id=2, tx_hash="h2")

    outcome = asyncio.run(_remote_verifier(ledger).verify_remote(prior, fresh))

    assert outcome.is_consistent
    assert ledger.calls == [("fetch_verifiable_tx", 2, 1)]


def test_remote_proof_for_other_transactions_is_rejected():
    ledger = FakeLedger(proofs=[VerifiableTx(source_tx_id=1, target_tx_id=7)])
    fresh = _snapshot(a=2, ballots=3, voted=3, tx_id=2, tx_hash="h2")

    outcome = asyncio.run(_remote_verifier(ledger).verify_remote(_snapshot(), fresh))

    assert outcome.reasons == (PROOF_REJECTED,)


def test_unknown_transaction_on_server_is_divergent():
    ledger = FakeLedger(proofs=[NotFoundError(404, "Not Found: tx not found")])
    fresh = _snapshot(a=2, ballots=3, voted=3, tx_id=2, tx_hash="h2")

    outcome = asyncio.run(_remote_verifier(ledger).verify_remote(_snapshot(), fresh))

    assert outcome.is_divergent
    assert outcome.reasons == (TX_NOT_FOUND,)


def test_remote_verification_without_prior_stays_structural():
    ledger = FakeLedger()

    outcome = asyncio.run(_remote_verifier(ledger).verify_remote(None, _snapshot()))

    assert outcome.is_consistent
    assert outcome.structural
    assert ledger.calls == []


def test_remote_transport_error_propagates():
    ledger = FakeLedger(proofs=[TransportError("GET failed", url="http://ledger.test/verifiable-tx")])

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(_remote_verifier(ledger).verify_remote(_snapshot(), _snapshot(tx_id=2)))

    assert exc_info.value.url.endswith("/verifiable-tx")
