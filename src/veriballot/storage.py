"""Almacenamiento persistente del cliente y último estado conocido.

English:
    Durable client storage and last-known state. ``JsonKeyValueStore`` is the
    durable key-value collaborator; ``SnapshotStore`` is the shared state that
    poll tasks read and the session controller writes.
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from .errors import StorageError
from .models import BallotRecord, ElectionStateSnapshot, ElectionStats, VoterSession

if TYPE_CHECKING:
    from .audit import AuditReport
    from .consistency import ConsistencyOutcome

logger = logging.getLogger(__name__)

SESSION_KEY = "voter_session"
SNAPSHOT_KEY = "election_state"
DEFAULT_STATE_FILENAME = "client_state.json"


def write_atomic(path: Path, content: bytes) -> None:
    """Escritura atómica usando archivo temporal.

    English: Atomic write using a temporary file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(delete=False, dir=str(path.parent)) as tmp_file:
        tmp_file.write(content)
        temp_name = tmp_file.name
    shutil.move(temp_name, path)


class JsonKeyValueStore:
    """Almacén clave-valor en un único archivo JSON.

    English: Key-value store backed by one JSON file; every write rewrites the
    file atomically.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            logger.error("storage_corrupt_file path=%s error=%s", self.path, exc)
            raise StorageError(f"Corrupt state file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"State file {self.path} must hold a JSON object")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        try:
            write_atomic(
                self.path,
                json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True).encode("utf-8"),
            )
        except OSError as exc:
            raise StorageError(f"Unable to write state file {self.path}: {exc}") from exc

    def get(self, key: str) -> Optional[Any]:
        return self._read_all().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)


class SnapshotStore:
    """Estado compartido: sesión del votante y último snapshot verificado.

    English:
        Shared state: the persisted voter session, the last verified election
        snapshot (persisted so divergence detection survives restarts) and
        the latest in-memory views produced by the poll tasks.
    """

    def __init__(self, kv: JsonKeyValueStore) -> None:
        self._kv = kv
        self.latest_stats: Optional[ElectionStats] = None
        self.latest_ballot: Optional[BallotRecord] = None
        self.latest_audit: Optional["AuditReport"] = None
        self.latest_outcome: Optional["ConsistencyOutcome"] = None

    @classmethod
    def at(cls, storage_path: Path, filename: str = DEFAULT_STATE_FILENAME) -> "SnapshotStore":
        return cls(JsonKeyValueStore(Path(storage_path) / filename))

    def load_session(self) -> Optional[VoterSession]:
        raw = self._kv.get(SESSION_KEY)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise StorageError(f"Stored session must be an object, got {type(raw).__name__}")
        try:
            return VoterSession.from_dict(raw)
        except ValueError as exc:
            raise StorageError(f"Stored session is invalid: {exc}") from exc

    def save_session(self, session: VoterSession) -> None:
        self._kv.set(SESSION_KEY, session.to_dict())
        logger.info("session_saved voter_id=%s voted=%s", session.voter_id, session.voted)

    def clear_session(self) -> None:
        self._kv.delete(SESSION_KEY)

    @property
    def last_snapshot(self) -> Optional[ElectionStateSnapshot]:
        raw = self._kv.get(SNAPSHOT_KEY)
        if raw is None:
            return None
        try:
            return ElectionStateSnapshot.from_dict(raw)
        except ValueError as exc:
            raise StorageError(f"Stored snapshot is invalid: {exc}") from exc

    def save_snapshot(self, snapshot: ElectionStateSnapshot) -> None:
        self._kv.set(SNAPSHOT_KEY, snapshot.to_dict())
        logger.debug("snapshot_saved tx_id=%s ballots=%s", snapshot.tx_id, snapshot.ballots)
