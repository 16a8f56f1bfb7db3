"""Canal de notificaciones al usuario con severidad.

English:
    User-facing notification sink with severities. ``CRITICAL`` is reserved for
    conditions that suggest the ledger itself may be compromised (divergent
    state, tampered ballot). Notices at or above a configurable level can be
    forwarded to a Telegram chat.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Set

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"

DEFAULT_MIN_LEVEL = "CRITICAL"
DEFAULT_RATE_LIMIT_SECONDS = 1.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_REQUEST_TIMEOUT = 10.0


class Severity(str, Enum):
    """Niveles de severidad.

    English: Severity levels.
    """

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return SEVERITY_RANKS[self]

    @property
    def log_level(self) -> int:
        return getattr(logging, self.value)


SEVERITY_RANKS = {
    Severity.INFO: 10,
    Severity.WARNING: 20,
    Severity.ERROR: 30,
    Severity.CRITICAL: 40,
}


class NoticeKind(str, Enum):
    """Tipos de aviso.

    English: Notice kinds.
    """

    DIVERGENT = "divergent"
    TAMPER_DETECTED = "tamper_detected"
    INVALID_VOTE_CODE = "invalid_vote_code"
    REGISTERED = "registered"
    REGISTRATION_REJECTED = "registration_rejected"
    VOTE_CAST = "vote_cast"
    VOTE_REJECTED = "vote_rejected"
    MISSING_IDENTIFIERS = "missing_identifiers"
    TRANSPORT_ERROR = "transport_error"
    STORAGE_ERROR = "storage_error"


@dataclass(frozen=True)
class Notice:
    """Aviso emitido al usuario.

    English: A notice shown to the user.
    """

    severity: Severity
    kind: NoticeKind
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def render(self) -> str:
        return f"[{self.severity.value}] {self.created_at.isoformat()} {self.kind.value}: {self.message}"


@dataclass(frozen=True)
class AlertConfig:
    """Español: Configuración del reenvío a Telegram.

    English: Telegram forwarding configuration.
    """

    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    min_level: str = DEFAULT_MIN_LEVEL
    rate_limit_seconds: float = DEFAULT_RATE_LIMIT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def from_env(cls) -> "AlertConfig":
        return cls(
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", "").strip(),
            telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID", "").strip(),
            min_level=os.getenv("ALERT_MIN_LEVEL", DEFAULT_MIN_LEVEL).strip().upper(),
            rate_limit_seconds=_env_float("ALERT_RATE_LIMIT_SECONDS", DEFAULT_RATE_LIMIT_SECONDS),
            max_retries=_env_int("ALERT_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            request_timeout=_env_float("ALERT_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        )


class TelegramBusy(Exception):
    """Telegram pidió reintentar (429 o 5xx).

    English: Telegram asked for a retry (429 or 5xx). ``retry_after`` is the
    delay Telegram requested, when it sent one.
    """

    def __init__(self, status_code: int, retry_after: Optional[float] = None) -> None:
        super().__init__(f"telegram responded {status_code}")
        self.status_code = status_code
        self.retry_after = retry_after


_backoff = wait_exponential(multiplier=1, min=1, max=30)


def _alert_wait(retry_state: RetryCallState) -> float:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, TelegramBusy) and exc.retry_after is not None:
        return exc.retry_after
    return _backoff(retry_state)


def _retry_after(response: httpx.Response) -> Optional[float]:
    # Bot API puts it in the body; proxies may only send the header.
    try:
        payload = response.json()
    except ValueError:
        payload = None
    raw: Any = None
    if isinstance(payload, dict):
        raw = (payload.get("parameters") or {}).get("retry_after")
    if raw is None:
        raw = response.headers.get("Retry-After")
    try:
        return max(0.0, float(raw)) if raw is not None else None
    except (TypeError, ValueError):
        return None


class TelegramForwarder:
    """Reenvía avisos graves a Telegram.

    English: Forward severe notices to a Telegram chat. Sends are spaced by
    ``rate_limit_seconds``; transport errors, 429 and 5xx answers are retried
    with tenacity, honouring Telegram's ``retry_after``.
    """

    def __init__(self, config: AlertConfig) -> None:
        self._config = config
        self._slot_lock = asyncio.Lock()
        self._next_slot = 0.0

    def is_configured(self) -> bool:
        return bool(self._config.telegram_bot_token and self._config.telegram_chat_id)

    def should_send(self, severity: Severity) -> bool:
        try:
            minimum = Severity(self._config.min_level)
        except ValueError:
            minimum = Severity(DEFAULT_MIN_LEVEL)
        return severity.rank >= minimum.rank

    async def send(self, notice: Notice) -> bool:
        if not self.is_configured() or not self.should_send(notice.severity):
            return False
        await self._wait_for_slot()

        retrying = AsyncRetrying(
            retry=retry_if_exception_type((httpx.RequestError, TelegramBusy)),
            stop=stop_after_attempt(max(1, self._config.max_retries)),
            wait=_alert_wait,
            reraise=True,
        )
        async with httpx.AsyncClient(timeout=self._config.request_timeout) as client:
            try:
                async for attempt in retrying:
                    with attempt:
                        delivered = await self._post(client, notice)
            except (httpx.RequestError, TelegramBusy) as exc:
                logger.error("alert_send_exhausted kind=%s error=%s", notice.kind.value, exc)
                return False
        return delivered

    async def _post(self, client: httpx.AsyncClient, notice: Notice) -> bool:
        response = await client.post(
            TELEGRAM_API_URL.format(token=self._config.telegram_bot_token),
            data={"chat_id": self._config.telegram_chat_id, "text": notice.render()},
        )
        if response.status_code == 429 or response.status_code >= 500:
            busy = TelegramBusy(response.status_code, _retry_after(response))
            logger.warning("alert_retryable status=%s retry_after=%s", busy.status_code, busy.retry_after)
            raise busy
        if not response.is_success:
            logger.error("alert_send_failed status=%s body=%s", response.status_code, response.text)
            return False
        logger.info("alert_sent kind=%s", notice.kind.value)
        return True

    async def _wait_for_slot(self) -> None:
        async with self._slot_lock:
            delay = self._next_slot - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            self._next_slot = time.monotonic() + self._config.rate_limit_seconds


class NotificationSink:
    """Destino de avisos compartido por tareas y flujos de sesión.

    English: Notice sink shared by poll tasks and session flows. Keeps a
    bounded history for rendering and mirrors every notice to the log.
    """

    def __init__(self, history: int = 200, forwarder: Optional[TelegramForwarder] = None) -> None:
        self._notices: Deque[Notice] = deque(maxlen=history)
        self._forwarder = forwarder
        self._pending: Set["asyncio.Task[bool]"] = set()

    def notify(
        self, severity: Severity, kind: NoticeKind, message: str, **context: Any
    ) -> Notice:
        notice = Notice(severity=severity, kind=kind, message=message, context=context)
        self._notices.append(notice)
        logger.log(severity.log_level, "notice kind=%s message=%s context=%s", kind.value, message, context)
        self._forward(notice)
        return notice

    def info(self, kind: NoticeKind, message: str, **context: Any) -> Notice:
        return self.notify(Severity.INFO, kind, message, **context)

    def warning(self, kind: NoticeKind, message: str, **context: Any) -> Notice:
        return self.notify(Severity.WARNING, kind, message, **context)

    def error(self, kind: NoticeKind, message: str, **context: Any) -> Notice:
        return self.notify(Severity.ERROR, kind, message, **context)

    def critical(self, kind: NoticeKind, message: str, **context: Any) -> Notice:
        return self.notify(Severity.CRITICAL, kind, message, **context)

    def recent(self, min_severity: Optional[Severity] = None) -> List[Notice]:
        if min_severity is None:
            return list(self._notices)
        return [notice for notice in self._notices if notice.severity.rank >= min_severity.rank]

    def _forward(self, notice: Notice) -> None:
        forwarder = self._forwarder
        if forwarder is None or not forwarder.is_configured() or not forwarder.should_send(notice.severity):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(forwarder.send(notice))
            return
        task = loop.create_task(forwarder.send(notice))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Espera los reenvíos pendientes.

        English: Wait for in-flight forwards so they are not cancelled when
        the event loop closes.
        """
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("alert_env_int_invalid name=%s value=%s", name, raw)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("alert_env_float_invalid name=%s value=%s", name, raw)
        return default

