"""Pruebas de la interfaz de línea de comandos.

Tests for the command line interface.
"""

import asyncio

import httpx
import pytest
from typer.testing import CliRunner

from conftest import BASE_URL
from veriballot.cli import app
from veriballot.models import ElectionStateSnapshot, VoterSession
from veriballot.storage import SnapshotStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VERIBALLOT_LEDGER_URL", BASE_URL)
    monkeypatch.setenv("VERIBALLOT_STORAGE_PATH", str(tmp_path / "state"))
    for key in ("VERIBALLOT_CONFIG", "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID"):
        monkeypatch.delenv(key, raising=False)


def test_stats_command_prints_tallies(httpx_mock):
    httpx_mock.add_response(
        url=f"{BASE_URL}/stats",
        json={"results": {"2": 5}, "registered": 7, "ballots": 5, "voted": 5},
    )

    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 0
    assert "Candidate A: 0" in result.stdout
    assert "Candidate B: 5" in result.stdout


def test_register_then_vote(httpx_mock, tmp_path):
    """Español: Flujo completo de registro y voto desde la CLI.

    English: Full registration and voting flow from the CLI.
    """
    httpx_mock.add_response(
        url=f"{BASE_URL}/register-voter",
        method="POST",
        json={"voter_id": "v-1", "ballot_id": "b-1"},
    )
    httpx_mock.add_response(url=f"{BASE_URL}/vote", method="POST", status_code=204)

    registered = runner.invoke(app, ["register", "0801", "Ana", "Calle 1", "ana@example.com"])
    voted = runner.invoke(app, ["vote", "2"])

    assert registered.exit_code == 0
    assert "Voter ID: v-1" in registered.stdout
    assert voted.exit_code == 0
    assert "Voted: yes" in voted.stdout
    assert (tmp_path / "state" / "client_state.json").exists()


def test_vote_without_session_fails_before_any_request():
    result = runner.invoke(app, ["vote", "1"])

    assert result.exit_code == 1


def test_audit_command_exits_nonzero_on_tampering(httpx_mock):
    httpx_mock.add_response(
        url=f"{BASE_URL}/ballot?ballot_id=b-1",
        json={"vote": 2, "history": [0, 1, 2]},
    )

    result = runner.invoke(app, ["audit", "--ballot-id", "b-1"])

    assert result.exit_code == 2
    assert "TAMPERED" in result.stdout


def test_verify_command_reports_first_run(httpx_mock):
    httpx_mock.add_response(url=f"{BASE_URL}/state", json={"tx_id": 1, "tx_hash": "h1"})
    httpx_mock.add_response(
        url=f"{BASE_URL}/stats",
        json={"results": {"1": 1}, "registered": 2, "ballots": 1, "voted": 1},
    )

    result = runner.invoke(app, ["verify"])

    assert result.exit_code == 0
    assert "Consistent (structural)" in result.stdout


def test_status_command_reads_ballot_and_voter_status(httpx_mock, tmp_path):
    SnapshotStore.at(tmp_path / "state").save_session(VoterSession(voter_id="v-1", ballot_id="b-1", voted=True))
    httpx_mock.add_response(url=f"{BASE_URL}/ballot?ballot_id=b-1", json={"vote": 1, "history": [0, 1]})
    httpx_mock.add_response(
        url=f"{BASE_URL}/voter-status?voter_id=v-1",
        json={"approved": "2024-03-01T10:00:00Z", "voted": "0001-01-01T00:00:00Z"},
    )

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Ballot on ledger: Candidate A" in result.stdout
    assert "Vote recorded on ledger: no" in result.stdout


def test_verify_divergence_alert_is_delivered_before_exit(httpx_mock, monkeypatch, tmp_path):
    """Español: El aviso crítico llega a Telegram aunque el comando termine.

    English: The critical alert reaches Telegram even though the command's
    event loop closes right after the check.
    """
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
    SnapshotStore.at(tmp_path / "state").save_snapshot(
        ElectionStateSnapshot(tallies={"1": 3}, registered=5, ballots=3, voted=3)
    )
    httpx_mock.add_response(url=f"{BASE_URL}/state", json={"tx_id": 2, "tx_hash": "h2"})
    httpx_mock.add_response(
        url=f"{BASE_URL}/stats",
        json={"results": {"1": 1}, "registered": 5, "ballots": 3, "voted": 3},
    )

    async def slow_telegram(request):
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"ok": True})

    httpx_mock.add_callback(slow_telegram, url="https://api.telegram.org/bottoken/sendMessage")

    result = runner.invoke(app, ["verify"])

    assert result.exit_code == 2
    assert "tally for candidate 1 moved backward: 3 -> 1" in result.stdout
    assert b"chat_id=42" in httpx_mock.get_request(url="https://api.telegram.org/bottoken/sendMessage").content
