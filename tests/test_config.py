"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `tests/test_config.py`.
Pruebas de carga y validación de configuración.

Componentes detectados:
  - test_load_config_defaults
  - test_environment_overrides_yaml
  - test_invalid_values_are_reported

======================== ENGLISH ========================
File: `tests/test_config.py`.
Configuration loading and validation tests.

Detected components:
  - test_load_config_defaults
  - test_environment_overrides_yaml
  - test_invalid_values_are_reported
"""

from pathlib import Path

import pytest

from veriballot.config import load_config


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in (
        "VERIBALLOT_CONFIG",
        "VERIBALLOT_LEDGER_URL",
        "VERIBALLOT_LOG_LEVEL",
        "VERIBALLOT_CONSISTENCY_PERIOD",
        "VERIBALLOT_CANDIDATE_NAMES",
        "VERIBALLOT_BASIC_AUTH_USER",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("VERIBALLOT_STORAGE_PATH", str(tmp_path / "state"))


def test_load_config_defaults(tmp_path):
    """Español: Valores por defecto y creación del directorio.

    English: Defaults apply and the storage directory is created.
    """
    settings = load_config()

    assert settings.LEDGER_URL == "http://localhost:8080"
    assert settings.CONSISTENCY_PERIOD == 5.0
    assert settings.STATS_PERIOD == 10.0
    assert settings.CANDIDATE_NAMES == {1: "Candidate A", 2: "Candidate B"}
    assert settings.basic_auth is None
    assert (tmp_path / "state").is_dir()


def test_environment_values_are_normalized(monkeypatch):
    monkeypatch.setenv("VERIBALLOT_LEDGER_URL", "http://ledger.example:9000/")
    monkeypatch.setenv("VERIBALLOT_LOG_LEVEL", "debug")
    monkeypatch.setenv("VERIBALLOT_BASIC_AUTH_USER", "auditor")

    settings = load_config()

    assert settings.LEDGER_URL == "http://ledger.example:9000"
    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.basic_auth == ("auditor", "")


def test_yaml_file_is_applied(tmp_path):
    config_path = tmp_path / "veriballot.yaml"
    config_path.write_text(
        "consistency_period: 3\ncandidate_names:\n  1: Alice\n",
        encoding="utf-8",
    )

    settings = load_config(config_path)

    assert settings.CONSISTENCY_PERIOD == 3.0
    assert settings.CANDIDATE_NAMES == {1: "Alice", 2: "Candidate B"}


def test_environment_overrides_yaml(monkeypatch, tmp_path):
    config_path = tmp_path / "veriballot.yaml"
    config_path.write_text("consistency_period: 3\n", encoding="utf-8")
    monkeypatch.setenv("VERIBALLOT_CONSISTENCY_PERIOD", "7")
    monkeypatch.setenv("VERIBALLOT_CONFIG", str(config_path))

    assert load_config().CONSISTENCY_PERIOD == 7.0


@pytest.mark.parametrize(
    "content",
    [
        "consistency_period: 0\n",
        "candidate_names:\n  3: Carol\n",
        "ledger_url: not a url\n",
        "log_level: chatty\n",
    ],
)
def test_invalid_values_are_reported(tmp_path, content):
    config_path = tmp_path / "veriballot.yaml"
    config_path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(config_path)


def test_yaml_must_be_a_mapping(tmp_path):
    config_path = tmp_path / "veriballot.yaml"
    config_path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping"):
        load_config(config_path)


def test_missing_yaml_file_is_reported():
    with pytest.raises(FileNotFoundError):
        load_config(Path("missing.yaml"))
