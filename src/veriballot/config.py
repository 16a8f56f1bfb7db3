# Config Module
# AUTO-DOC-INDEX
#
# ES: Índice rápido
#   1) Propósito del módulo
#   2) Componentes principales
#   3) Puntos de extensión
#
# EN: Quick index
#   1) Module purpose
#   2) Main components
#   3) Extension points
#
# Secciones / Sections:
#   - Configuración / Configuration
#   - Lógica principal / Core logic
#   - Integraciones / Integrations

"""Configuración validada del cliente veriballot.

Validated veriballot client configuration.

Precedence (highest first): environment variables (``VERIBALLOT_*``),
``.env.local``/``.env``, the optional YAML file, then defaults.

Example YAML configuration:
    ledger_url: "http://localhost:8080"
    storage_path: "data"
    consistency_period: 5
    candidate_names:
      1: "Candidate A"
      2: "Candidate B"
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import AnyUrl, Field, TypeAdapter, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import CANDIDATE_CODES, DEFAULT_CANDIDATE_NAMES

ENV_PREFIX = "VERIBALLOT_"
CONFIG_PATH_ENV = f"{ENV_PREFIX}CONFIG"
_ENV_LOCAL_PATH = Path(".env.local")


class ClientSettings(BaseSettings):
    """Variables de entorno y archivo .env para el cliente.

    English: Environment variables and .env file for the client.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    LEDGER_URL: str = "http://localhost:8080"
    STORAGE_PATH: Path = Path("data")
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    BASIC_AUTH_USER: Optional[str] = None
    BASIC_AUTH_PASSWORD: Optional[str] = None

    STATS_PERIOD: float = Field(default=10.0, gt=0)
    BALLOT_STATUS_PERIOD: float = Field(default=15.0, gt=0)
    CONSISTENCY_PERIOD: float = Field(default=5.0, gt=0)
    RANDOM_AUDIT_PERIOD: float = Field(default=8.0, gt=0)
    TASK_RETRY_ATTEMPTS: int = Field(default=2, ge=1)

    CANDIDATE_NAMES: Dict[int, str] = Field(default_factory=lambda: dict(DEFAULT_CANDIDATE_NAMES))
    NOTIFICATION_HISTORY: int = Field(default=200, ge=1)

    @field_validator("LEDGER_URL")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        """Validate URLs without changing the stored type."""
        TypeAdapter(AnyUrl).validate_python(value)
        return value.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return normalized

    @field_validator("CANDIDATE_NAMES")
    @classmethod
    def _validate_candidates(cls, value: Dict[int, str]) -> Dict[int, str]:
        known = {code.value for code in CANDIDATE_CODES}
        unknown = sorted(set(value) - known)
        if unknown:
            raise ValueError(f"candidate names given for unknown vote codes: {unknown}")
        names = dict(DEFAULT_CANDIDATE_NAMES)
        names.update({code: name.strip() for code, name in value.items() if name.strip()})
        return names

    @property
    def basic_auth(self) -> Optional[tuple[str, str]]:
        if self.BASIC_AUTH_USER is None:
            return None
        return (self.BASIC_AUTH_USER, self.BASIC_AUTH_PASSWORD or "")

    def ensure_storage_path(self) -> None:
        """/** Crea el directorio de almacenamiento si falta. / Create the storage directory when missing. **/"""
        if self.STORAGE_PATH.exists() and not self.STORAGE_PATH.is_dir():
            raise ValueError(f"STORAGE_PATH is not a directory: {self.STORAGE_PATH}")
        self.STORAGE_PATH.mkdir(parents=True, exist_ok=True)


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """Load a YAML mapping or raise a user-facing error.

    Carga un mapa YAML o lanza un error orientado al usuario.
    """
    if not path.exists():
        raise FileNotFoundError(f"Falta {path.as_posix()} (Missing {path.as_posix()}).")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"{path.name} tiene errores de sintaxis YAML ({path.name} has YAML syntax errors).") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name} debe ser un mapa YAML ({path.name} must be a YAML mapping).")
    return raw


def _yaml_overlay(path: Path) -> dict[str, Any]:
    # Keys set in the environment win over the file.
    overlay: dict[str, Any] = {}
    for key, value in _load_yaml_mapping(path).items():
        field_name = str(key).strip().upper()
        if f"{ENV_PREFIX}{field_name}" in os.environ:
            continue
        overlay[field_name] = value
    return overlay


def load_config(config_path: Optional[Path] = None) -> ClientSettings:
    """/** Carga y valida configuración, fallando con detalle. / Load and validate configuration, failing with details. **/"""
    load_dotenv(_ENV_LOCAL_PATH, override=False)
    if config_path is None and os.getenv(CONFIG_PATH_ENV):
        config_path = Path(os.environ[CONFIG_PATH_ENV])
    overlay = _yaml_overlay(config_path) if config_path is not None else {}
    try:
        settings = ClientSettings(**overlay)
        settings.ensure_storage_path()
        return settings
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
