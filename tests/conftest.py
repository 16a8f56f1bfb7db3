"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `tests/conftest.py`.
Fixtures compartidas: bloqueo de red, almacén temporal y dobles del registro.

Componentes detectados:
  - block_network
  - reset_logging_handlers
  - store
  - notifier
  - FakeLedger

======================== ENGLISH ========================
File: `tests/conftest.py`.
Shared fixtures: network blocking, temporary store and ledger doubles.

Detected components:
  - block_network
  - reset_logging_handlers
  - store
  - notifier
  - FakeLedger
"""

from __future__ import annotations

import asyncio
import socket
from typing import Any, List, Optional

import pytest

from veriballot.logging import remove_handlers
from veriballot.models import BallotRecord, ElectionStateSnapshot, ElectionStats, VerifiableTx, VoterSession
from veriballot.notifications import NotificationSink
from veriballot.storage import SnapshotStore

BASE_URL = "http://ledger.test"


@pytest.fixture(autouse=True)
def block_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Impide conexiones de red reales en tests.

    English:
        Prevents real network connections in tests.
    """

    def guarded_connect(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    def guarded_create_connection(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    monkeypatch.setattr(socket.socket, "connect", guarded_connect, raising=True)
    monkeypatch.setattr(socket, "create_connection", guarded_create_connection, raising=True)


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    yield
    remove_handlers()


@pytest.fixture
def store(tmp_path) -> SnapshotStore:
    return SnapshotStore.at(tmp_path)


@pytest.fixture
def notifier() -> NotificationSink:
    return NotificationSink(history=50)


class FakeLedger:
    """Doble del cliente del registro con respuestas programadas.

    English: Ledger client double with scripted responses. Each queued item is
    returned in order; an exception instance is raised instead.
    """

    def __init__(
        self,
        *,
        states: Optional[List[Any]] = None,
        stats: Optional[List[Any]] = None,
        ballots: Optional[List[Any]] = None,
        random_ballots: Optional[List[Any]] = None,
        registrations: Optional[List[Any]] = None,
        votes: Optional[List[Any]] = None,
        proofs: Optional[List[Any]] = None,
    ) -> None:
        self.states = list(states or [])
        self.stats = list(stats or [])
        self.ballots = list(ballots or [])
        self.random_ballots = list(random_ballots or [])
        self.registrations = list(registrations or [])
        self.votes = list(votes or [])
        self.proofs = list(proofs or [])
        self.calls: List[tuple] = []
        self.vote_gate: Optional[asyncio.Event] = None

    @staticmethod
    def _next(queue: List[Any]) -> Any:
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def fetch_state(self) -> ElectionStateSnapshot:
        self.calls.append(("fetch_state",))
        return self._next(self.states)

    async def fetch_stats(self) -> ElectionStats:
        self.calls.append(("fetch_stats",))
        return self._next(self.stats)

    async def fetch_ballot(self, ballot_id: str) -> BallotRecord:
        self.calls.append(("fetch_ballot", ballot_id))
        return self._next(self.ballots)

    async def fetch_random_ballot(self) -> BallotRecord:
        self.calls.append(("fetch_random_ballot",))
        return self._next(self.random_ballots)

    async def fetch_verifiable_tx(self, server_tx: int, local_tx: int) -> VerifiableTx:
        self.calls.append(("fetch_verifiable_tx", server_tx, local_tx))
        return self._next(self.proofs)

    async def register_voter(self, citizen_id: str, name: str, address: str, email: str) -> VoterSession:
        self.calls.append(("register_voter", citizen_id, name, address, email))
        if not self.registrations:
            return VoterSession(voter_id="v-1", ballot_id="b-1")
        return self._next(self.registrations)

    async def cast_vote(self, voter_id: str, ballot_id: str, candidate: Any) -> None:
        self.calls.append(("cast_vote", voter_id, ballot_id, int(candidate)))
        if self.vote_gate is not None:
            await self.vote_gate.wait()
        if self.votes:
            self._next(self.votes)


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()
