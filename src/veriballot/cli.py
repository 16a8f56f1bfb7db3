"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/veriballot/cli.py`.
Interfaz de línea de comandos: registro, voto, auditoría y vigilancia.

Componentes detectados:
  - Runtime
  - build_runtime
  - register / vote / status / stats / audit / verify / watch

======================== ENGLISH ========================
File: `src/veriballot/cli.py`.
Command line interface: registration, voting, audits and continuous watch.

Detected components:
  - Runtime
  - build_runtime
  - register / vote / status / stats / audit / verify / watch
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Optional, Tuple, TypeVar

import structlog
import typer

from .audit import AuditTrailVerifier
from .config import ClientSettings, load_config
from .consistency import ConsistencyVerifier, InvariantProofChecker, ProofCheckerHandle
from .display import render_audit, render_notices, render_outcome, render_session, render_stats
from .errors import LedgerError
from .ledger_client import LedgerClient
from .models import BallotRecord, VoterStatus
from .logging import bind_context, setup_logging
from .notifications import AlertConfig, NotificationSink, Severity, TelegramForwarder
from .scheduler import PollingScheduler
from .session import SessionController
from .storage import SnapshotStore
from .tasks import LedgerMonitor, build_default_tasks, periods_from_settings

T = TypeVar("T")

app = typer.Typer(help="veriballot: verifying client for a tamper-evident ballot ledger")


@dataclass
class Runtime:
    """Español: Dependencias compartidas por los comandos.

    English: Dependencies shared by the commands.
    """

    settings: ClientSettings
    store: SnapshotStore
    notifier: NotificationSink
    client: LedgerClient
    proof_checker: ProofCheckerHandle
    log: structlog.BoundLogger

    def monitor(self) -> LedgerMonitor:
        return LedgerMonitor(
            self.client,
            self.store,
            ConsistencyVerifier(self.proof_checker, client=self.client),
            self.notifier,
            candidate_names=self.settings.CANDIDATE_NAMES,
            retry_attempts=self.settings.TASK_RETRY_ATTEMPTS,
        )


def build_ledger_client(settings: ClientSettings) -> LedgerClient:
    return LedgerClient.from_settings(settings)


def build_runtime(config_path: Optional[Path] = None) -> Runtime:
    try:
        settings = load_config(config_path)
    except (ValueError, FileNotFoundError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    log = setup_logging(settings.LOG_LEVEL, settings.STORAGE_PATH)
    proof_checker = ProofCheckerHandle()
    proof_checker.mark_ready(InvariantProofChecker())
    return Runtime(
        settings=settings,
        store=SnapshotStore.at(settings.STORAGE_PATH),
        notifier=NotificationSink(
            history=settings.NOTIFICATION_HISTORY,
            forwarder=TelegramForwarder(AlertConfig.from_env()),
        ),
        client=build_ledger_client(settings),
        proof_checker=proof_checker,
        log=log,
    )


def _run(runtime: Runtime, coro: Awaitable[T]) -> T:
    async def runner() -> T:
        async with runtime.client:
            try:
                return await coro
            finally:
                await runtime.notifier.drain()

    try:
        return asyncio.run(runner())
    except LedgerError as exc:
        typer.secho(f"{type(exc).__name__}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _echo_notices(runtime: Runtime) -> None:
    for line in render_notices(runtime.notifier.recent(min_severity=Severity.WARNING)):
        typer.secho(line, fg=typer.colors.RED, err=True)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file."),
) -> None:
    """Interfaz de línea de comandos de veriballot.

    English: veriballot command line interface.
    """
    ctx.obj = config


@app.command()
def register(ctx: typer.Context, citizen_id: str, name: str, address: str, email: str) -> None:
    """Register as a voter and store the returned identifiers."""
    runtime = build_runtime(ctx.obj)
    controller = SessionController(runtime.client, runtime.store, runtime.notifier)
    session = _run(runtime, controller.register(citizen_id, name, address, email))
    if session is None:
        _echo_notices(runtime)
        raise typer.Exit(code=1)
    typer.echo("\n".join(render_session(session)))


@app.command()
def vote(
    ctx: typer.Context,
    candidate: int = typer.Argument(..., help="Vote code: 1 or 2."),
    voter_id: Optional[str] = typer.Option(None, help="Override the stored voter id."),
    ballot_id: Optional[str] = typer.Option(None, help="Override the stored ballot id."),
) -> None:
    """Cast the vote once."""
    runtime = build_runtime(ctx.obj)
    controller = SessionController(runtime.client, runtime.store, runtime.notifier)
    cast = _run(runtime, controller.cast_vote(candidate, voter_id=voter_id, ballot_id=ballot_id))
    if not cast:
        _echo_notices(runtime)
        raise typer.Exit(code=1)
    session = controller.session
    bind_context(runtime.log, voter_id=session.voter_id, ballot_id=session.ballot_id).info("vote_confirmed")
    typer.echo("\n".join(render_session(session)))


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the stored session and the ballot as the ledger reports it."""
    runtime = build_runtime(ctx.obj)
    session = runtime.store.load_session()
    if session is None:
        typer.echo("\n".join(render_session(None)))
        return

    async def fetch() -> Tuple[BallotRecord, VoterStatus]:
        record = await runtime.client.fetch_ballot(session.ballot_id)
        return record, await runtime.client.fetch_voter_status(session.voter_id)

    record, voter_status = _run(runtime, fetch())
    typer.echo("\n".join(render_session(session, record, runtime.settings.CANDIDATE_NAMES, voter_status)))


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show current tallies."""
    runtime = build_runtime(ctx.obj)
    result = _run(runtime, runtime.client.fetch_stats())
    typer.echo("\n".join(render_stats(result, runtime.settings.CANDIDATE_NAMES).lines()))


@app.command()
def audit(
    ctx: typer.Context,
    ballot_id: Optional[str] = typer.Option(None, help="Ballot to audit; random when omitted."),
) -> None:
    """Audit one ballot's history for post-commit mutation."""
    runtime = build_runtime(ctx.obj)
    auditor = AuditTrailVerifier(runtime.client, runtime.settings.CANDIDATE_NAMES)
    report = _run(runtime, auditor.audit(ballot_id))
    typer.echo("\n".join(render_audit(report)))
    if report.tamper_detected:
        raise typer.Exit(code=2)


@app.command()
def verify(ctx: typer.Context) -> None:
    """Run one consistency check against the last verified state."""
    runtime = build_runtime(ctx.obj)
    _run(runtime, runtime.monitor().check_consistency())
    outcome = runtime.store.latest_outcome
    if outcome is None:
        raise typer.Exit(code=1)
    typer.echo(render_outcome(outcome))
    if outcome.is_divergent:
        raise typer.Exit(code=2)


@app.command()
def watch(ctx: typer.Context) -> None:
    """Poll the ledger continuously until interrupted."""
    runtime = build_runtime(ctx.obj)
    monitor = runtime.monitor()
    scheduler = PollingScheduler(build_default_tasks(monitor, periods_from_settings(runtime.settings)))
    bind_context(runtime.log, task="watch").info(
        "watch_started", ledger_url=runtime.settings.LEDGER_URL, tasks=sorted(scheduler.tasks)
    )
    try:
        _run(runtime, scheduler.run_forever())
    except KeyboardInterrupt:
        typer.echo("stopped")


if __name__ == "__main__":
    app()
