"""Auditoría del historial de una boleta.

English:
    Ballot audit trail verification. A valid ballot history is one Registered
    entry optionally followed by exactly one Cast entry, so anything longer
    than two entries means a committed vote was mutated. Unknown codes are
    reported as ``Invalid`` entries and still count toward the length.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple

from .ledger_client import LedgerClient
from .models import BallotRecord, EntryKind, HistoryEntry

logger = logging.getLogger(__name__)

MAX_VALID_HISTORY = 2


@dataclass(frozen=True)
class AuditReport:
    """Informe de auditoría de una boleta.

    English: Audit report for one ballot.
    """

    ok: bool
    transcript: Tuple[str, ...]
    record: BallotRecord
    entries: Tuple[HistoryEntry, ...] = ()
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ballot_id(self) -> Optional[str]:
        return self.record.ballot_id

    @property
    def tamper_detected(self) -> bool:
        return not self.ok

    @property
    def invalid_codes(self) -> Tuple[Any, ...]:
        return tuple(entry.code for entry in self.entries if entry.kind is EntryKind.INVALID)


def evaluate_record(
    record: BallotRecord, candidate_names: Optional[Mapping[int, str]] = None
) -> AuditReport:
    """Aplica la invariante del ciclo de vida a un registro ya obtenido.

    English: Apply the lifecycle invariant to an already fetched record.
    """
    entries = record.entries(candidate_names)
    return AuditReport(
        ok=len(entries) <= MAX_VALID_HISTORY,
        transcript=tuple(entry.label for entry in entries),
        record=record,
        entries=entries,
    )


class AuditTrailVerifier:
    """Obtiene y audita el historial de boletas.

    English: Fetch and audit ballot histories. Fetch failures propagate as
    ``TransportError``/``RejectedError``; bad codes never raise.
    """

    def __init__(
        self, client: LedgerClient, candidate_names: Optional[Mapping[int, str]] = None
    ) -> None:
        self._client = client
        self._candidate_names = candidate_names

    async def audit(self, ballot_id: Optional[str] = None) -> AuditReport:
        if ballot_id is None:
            record = await self._client.fetch_random_ballot()
        else:
            record = await self._client.fetch_ballot(ballot_id)
        report = evaluate_record(record, self._candidate_names)
        if report.tamper_detected:
            logger.warning(
                "audit_tamper_detected ballot_id=%s history_length=%s transcript=%s",
                report.ballot_id,
                len(report.entries),
                list(report.transcript),
            )
        else:
            logger.info("audit_ok ballot_id=%s history_length=%s", report.ballot_id, len(report.entries))
        return report
