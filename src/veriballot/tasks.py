"""Tareas periódicas concretas del cliente verificador.

English:
    Concrete poll tasks: stats refresh, ballot-status refresh, consistency
    check and random-ballot audit. Transport failures inside an action are
    retried with exponential backoff; anything still failing propagates to
    the scheduler, which logs it.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .audit import AuditTrailVerifier, evaluate_record
from .consistency import ConsistencyOutcome, ConsistencyVerifier
from .errors import NotFoundError, TransportError
from .ledger_client import LedgerClient
from .notifications import NoticeKind, NotificationSink
from .scheduler import PollTask
from .storage import SnapshotStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATS_REFRESH = "stats_refresh"
BALLOT_STATUS_REFRESH = "ballot_status_refresh"
CONSISTENCY_CHECK = "consistency_check"
RANDOM_BALLOT_AUDIT = "random_ballot_audit"

DEFAULT_PERIODS = {
    STATS_REFRESH: 10.0,
    BALLOT_STATUS_REFRESH: 15.0,
    CONSISTENCY_CHECK: 5.0,
    RANDOM_BALLOT_AUDIT: 8.0,
}


class LedgerMonitor:
    """Acciones de las tareas periódicas sobre el estado compartido.

    English: Poll task actions over the shared state. Reads the session and
    snapshot from ``store``, writes the latest views back and reports anything
    user-visible to ``notifier``.
    """

    def __init__(
        self,
        client: LedgerClient,
        store: SnapshotStore,
        verifier: ConsistencyVerifier,
        notifier: NotificationSink,
        *,
        candidate_names: Optional[Mapping[int, str]] = None,
        retry_attempts: int = 2,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        self._client = client
        self._store = store
        self._verifier = verifier
        self._notifier = notifier
        self._candidate_names = candidate_names
        self._auditor = AuditTrailVerifier(client, candidate_names)
        self._retry_attempts = retry_attempts

    async def _call(self, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransportError),
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await func(*args)
        return result

    async def refresh_stats(self) -> None:
        stats = await self._call(self._client.fetch_stats)
        self._store.latest_stats = stats
        logger.debug("stats_refreshed registered=%s ballots=%s", stats.registered, stats.ballots)

    async def refresh_ballot_status(self) -> None:
        session = self._store.load_session()
        if session is None:
            return
        record = await self._call(self._client.fetch_ballot, session.ballot_id)
        self._store.latest_ballot = record
        report = evaluate_record(record, self._candidate_names)
        if report.tamper_detected:
            self._notifier.critical(
                NoticeKind.TAMPER_DETECTED,
                f"your ballot {session.ballot_id} has {len(report.entries)} history entries: "
                + ", ".join(report.transcript),
                ballot_id=session.ballot_id,
            )

    async def check_consistency(self) -> None:
        state = await self._call(self._client.fetch_state)
        stats = await self._call(self._client.fetch_stats)
        fresh = state.with_stats(stats)
        previous_outcome = self._store.latest_outcome
        outcome = await self._call(self._verifier.verify_remote, self._store.last_snapshot, fresh)
        self._store.latest_outcome = outcome
        self._store.latest_stats = stats

        if outcome.is_consistent:
            self._store.save_snapshot(fresh)
            return
        if outcome.is_skipped:
            logger.debug("consistency_check_skipped reasons=%s", list(outcome.reasons))
            return
        if _same_divergence(previous_outcome, outcome):
            logger.warning("consistency_still_divergent reasons=%s", list(outcome.reasons))
            return
        self._notifier.critical(
            NoticeKind.DIVERGENT,
            "ledger state diverged: " + "; ".join(outcome.reasons),
            tx_id=fresh.tx_id,
            structural=outcome.structural,
        )

    async def audit_random_ballot(self) -> None:
        try:
            report = await self._call(self._auditor.audit)
        except NotFoundError as exc:
            logger.info("random_ballot_unavailable reason=%s", exc.message)
            return
        self._store.latest_audit = report
        if report.tamper_detected:
            self._notifier.critical(
                NoticeKind.TAMPER_DETECTED,
                f"ballot {report.ballot_id} history has {len(report.entries)} entries: "
                + ", ".join(report.transcript),
                ballot_id=report.ballot_id,
            )
        if report.invalid_codes:
            self._notifier.warning(
                NoticeKind.INVALID_VOTE_CODE,
                f"ballot {report.ballot_id} reports unknown vote codes {list(report.invalid_codes)}",
                ballot_id=report.ballot_id,
            )


def _same_divergence(previous: Optional[ConsistencyOutcome], current: ConsistencyOutcome) -> bool:
    return previous is not None and previous.is_divergent and previous.reasons == current.reasons


def build_default_tasks(
    monitor: LedgerMonitor, periods: Optional[Mapping[str, float]] = None
) -> List[PollTask]:
    """Construye las cuatro tareas estándar.

    English: Build the four standard tasks; ``periods`` overrides the default
    period per task name.
    """
    resolved = dict(DEFAULT_PERIODS)
    resolved.update(periods or {})
    return [
        PollTask(STATS_REFRESH, resolved[STATS_REFRESH], monitor.refresh_stats),
        PollTask(BALLOT_STATUS_REFRESH, resolved[BALLOT_STATUS_REFRESH], monitor.refresh_ballot_status),
        PollTask(CONSISTENCY_CHECK, resolved[CONSISTENCY_CHECK], monitor.check_consistency),
        PollTask(RANDOM_BALLOT_AUDIT, resolved[RANDOM_BALLOT_AUDIT], monitor.audit_random_ballot),
    ]


def periods_from_settings(settings: Any) -> dict[str, float]:
    return {
        STATS_REFRESH: settings.STATS_PERIOD,
        BALLOT_STATUS_REFRESH: settings.BALLOT_STATUS_PERIOD,
        CONSISTENCY_CHECK: settings.CONSISTENCY_PERIOD,
        RANDOM_BALLOT_AUDIT: settings.RANDOM_AUDIT_PERIOD,
    }
