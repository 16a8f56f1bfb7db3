"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/veriballot/logging.py`.
Logging estructurado del cliente: los registros de stdlib y de structlog
salen como una línea JSON por evento.

Componentes detectados:
  - setup_logging
  - bind_context

======================== ENGLISH ========================
File: `src/veriballot/logging.py`.
Client structured logging: stdlib and structlog records both come out as one
JSON line per event.

Detected components:
  - setup_logging
  - bind_context
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

FILE_HANDLER_NAME = "veriballot.file"
CONSOLE_HANDLER_NAME = "veriballot.console"
HANDLER_NAMES = (FILE_HANDLER_NAME, CONSOLE_HANDLER_NAME)


def _shared_processors() -> List[Any]:
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def remove_handlers(root: Optional[logging.Logger] = None) -> None:
    """Quita los handlers instalados por :func:`setup_logging`.

    English: Detach and close the handlers installed by :func:`setup_logging`.
    """
    root = root or logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() in HANDLER_NAMES:
            root.removeHandler(handler)
            handler.close()


def setup_logging(log_level: str, storage_path: Path) -> structlog.BoundLogger:
    """Configura structlog y handlers de consola/archivo.

    English: Route stdlib and structlog through one JSON formatter, to a
    daily-rotated file under ``<storage>/logs`` and to stderr. Calling it again
    replaces the previous handlers.
    """
    log_dir = storage_path / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    shared = _shared_processors()
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )

    file_handler = TimedRotatingFileHandler(
        log_dir / "veriballot.log",
        when="midnight",
        backupCount=30,
        encoding="utf-8",
    )
    file_handler.set_name(FILE_HANDLER_NAME)
    console_handler = logging.StreamHandler()
    console_handler.set_name(CONSOLE_HANDLER_NAME)

    root = logging.getLogger()
    remove_handlers(root)
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(log_level.upper())

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger("veriballot")


def bind_context(
    logger: structlog.BoundLogger,
    voter_id: Optional[str] = None,
    ballot_id: Optional[str] = None,
    task: Optional[str] = None,
) -> structlog.BoundLogger:
    """Adjunta el contexto presente (votante, boleta, tarea).

    English: Bind whichever of voter, ballot and task ids are given.
    """
    context: Dict[str, Any] = {
        key: value
        for key, value in (("voter_id", voter_id), ("ballot_id", ballot_id), ("task", task))
        if value
    }
    return logger.bind(**context)
