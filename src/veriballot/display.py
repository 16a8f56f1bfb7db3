"""Representación en texto de estadísticas, auditorías y sesiones.

English: Plain-text rendering of stats, audits and sessions for the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from .audit import AuditReport
from .consistency import ConsistencyOutcome
from .models import CANDIDATE_CODES, BallotRecord, ElectionStats, VoterSession, VoterStatus, candidate_name
from .notifications import Notice


@dataclass(frozen=True)
class StatsView:
    """Conteos listos para mostrar; claves ausentes se muestran como "0".

    English: Display-ready counts; absent keys render as ``"0"``.
    """

    candidates: Dict[str, str] = field(default_factory=dict)
    registered: str = "0"
    ballots: str = "0"
    voted: str = "0"

    def lines(self) -> List[str]:
        lines = [f"{label}: {count}" for label, count in self.candidates.items()]
        lines.append(f"Registered voters: {self.registered}")
        lines.append(f"Ballots cast: {self.ballots}")
        return lines


def render_stats(stats: ElectionStats, candidate_names: Optional[Mapping[int, str]] = None) -> StatsView:
    return StatsView(
        candidates={
            candidate_name(code, candidate_names): str(stats.tally_for(code)) for code in CANDIDATE_CODES
        },
        registered=str(stats.registered),
        ballots=str(stats.ballots),
        voted=str(stats.voted),
    )


def render_audit(report: AuditReport) -> List[str]:
    verdict = "OK" if report.ok else "TAMPERED"
    lines = [f"Ballot {report.ballot_id or '?'}: {verdict} @ {report.checked_at.isoformat()}"]
    lines.extend(f"  {index}. {label}" for index, label in enumerate(report.transcript, start=1))
    if not report.transcript:
        lines.append("  (no history)")
    return lines


def render_outcome(outcome: ConsistencyOutcome) -> str:
    stamp = outcome.checked_at.isoformat()
    if outcome.is_consistent:
        scope = " (structural)" if outcome.structural else ""
        return f"Consistent{scope} @ {stamp}"
    if outcome.is_skipped:
        return f"Skipped @ {stamp}: {'; '.join(outcome.reasons)}"
    return f"Divergent @ {stamp}: {'; '.join(outcome.reasons)}"


def render_session(
    session: Optional[VoterSession],
    record: Optional[BallotRecord] = None,
    candidate_names: Optional[Mapping[int, str]] = None,
    voter_status: Optional[VoterStatus] = None,
) -> List[str]:
    if session is None:
        return ["Not registered."]
    lines = [
        f"Voter ID: {session.voter_id}",
        f"Ballot ID: {session.ballot_id}",
        f"Voted: {'yes' if session.voted else 'no'}",
    ]
    if record is not None:
        lines.append(f"Ballot on ledger: {record.current_label(candidate_names)}")
    if voter_status is not None:
        lines.append(f"Approved on ledger: {_stamp(voter_status.approved_at)}")
        lines.append(f"Vote recorded on ledger: {_stamp(voter_status.voted_at)}")
    return lines


def _stamp(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else "no"


def render_notices(notices: Iterable[Notice]) -> List[str]:
    return [notice.render() for notice in notices]
