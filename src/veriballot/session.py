"""Flujos de registro y voto del votante.

English:
    Registration and vote casting as guarded two-phase flows: check
    preconditions, issue the request, then persist the updated session.
    Each flow has its own single-flight guard; a second attempt while one is
    outstanding is a no-op. Server rejections reach the user verbatim through
    the notification sink and leave the flow ready for another attempt.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from .errors import AlreadyVoted, MissingIdentifiers, RejectedError, StorageError, TransportError
from .ledger_client import LedgerClient
from .models import VoteCode, VoterSession
from .notifications import NoticeKind, NotificationSink
from .storage import SnapshotStore

logger = logging.getLogger(__name__)


class RegistrationState(str, Enum):
    """Estados del registro.

    English: Registration states. A rejection returns to ``UNREGISTERED``.
    """

    UNREGISTERED = "unregistered"
    REGISTERING = "registering"
    REGISTERED = "registered"


class VotingState(str, Enum):
    """Estados del voto.

    English: Voting states. ``VOTED`` is terminal.
    """

    NOT_VOTED = "not_voted"
    CASTING = "casting"
    VOTED = "voted"


class SessionController:
    """Orquesta el registro y la emisión del voto.

    English: Orchestrates registration and vote casting over the persisted
    voter session.
    """

    def __init__(self, client: LedgerClient, store: SnapshotStore, notifier: NotificationSink) -> None:
        self._client = client
        self._store = store
        self._notifier = notifier
        self._registration_guard = asyncio.Lock()
        self._vote_guard = asyncio.Lock()
        self._session = store.load_session()
        self.last_rejection: Optional[str] = None
        if self._session is None:
            self.registration_state = RegistrationState.UNREGISTERED
            self.voting_state = VotingState.NOT_VOTED
        else:
            self.registration_state = RegistrationState.REGISTERED
            self.voting_state = VotingState.VOTED if self._session.voted else VotingState.NOT_VOTED

    @property
    def session(self) -> Optional[VoterSession]:
        return self._session

    @property
    def can_register(self) -> bool:
        return self.registration_state is RegistrationState.UNREGISTERED

    @property
    def can_vote(self) -> bool:
        return self._session is not None and self.voting_state is VotingState.NOT_VOTED

    async def register(self, citizen_id: str, name: str, address: str, email: str) -> Optional[VoterSession]:
        """Registra al votante y persiste su sesión.

        English: Register the voter and persist the session. Returns the
        session, or ``None`` when the attempt was a no-op or failed.
        """
        if self.registration_state is RegistrationState.REGISTERED:
            return self._session
        if self._registration_guard.locked():
            logger.debug("registration_skipped reason=in_flight")
            return None

        async with self._registration_guard:
            self.registration_state = RegistrationState.REGISTERING
            try:
                session = await self._client.register_voter(
                    citizen_id.strip(), name.strip(), address.strip(), email.strip()
                )
            except RejectedError as exc:
                self.registration_state = RegistrationState.UNREGISTERED
                self.last_rejection = exc.message
                self._notifier.error(
                    NoticeKind.REGISTRATION_REJECTED, exc.message, status_code=exc.status_code
                )
                return None
            except TransportError as exc:
                self.registration_state = RegistrationState.UNREGISTERED
                self._notifier.error(NoticeKind.TRANSPORT_ERROR, str(exc))
                return None

            self._session = session
            self.registration_state = RegistrationState.REGISTERED
            self.voting_state = VotingState.NOT_VOTED
            self.last_rejection = None
            self._persist(session)
            self._notifier.info(
                NoticeKind.REGISTERED,
                f"registered with voter id {session.voter_id} and ballot id {session.ballot_id}",
                voter_id=session.voter_id,
                ballot_id=session.ballot_id,
            )
            return session

    async def cast_vote(
        self,
        candidate: VoteCode | int,
        *,
        voter_id: Optional[str] = None,
        ballot_id: Optional[str] = None,
    ) -> bool:
        """Emite el voto una única vez.

        English: Cast the vote exactly once. Identifiers default to the
        persisted session. Raises ``AlreadyVoted`` or ``MissingIdentifiers``
        before any network call; returns ``False`` for a no-op or a rejected
        attempt and ``True`` once the vote is cast.
        """
        if self.voting_state is VotingState.VOTED:
            raise AlreadyVoted("this session has already cast its vote")
        if self._vote_guard.locked():
            logger.debug("vote_skipped reason=in_flight")
            return False
        voter_id = (voter_id if voter_id is not None else self._voter_id()).strip()
        ballot_id = (ballot_id if ballot_id is not None else self._ballot_id()).strip()
        if not voter_id or not ballot_id:
            message = "both voter id and ballot id are required to vote"
            self._notifier.warning(NoticeKind.MISSING_IDENTIFIERS, message)
            raise MissingIdentifiers(message)

        async with self._vote_guard:
            self.voting_state = VotingState.CASTING
            try:
                await self._client.cast_vote(voter_id, ballot_id, candidate)
            except RejectedError as exc:
                self.voting_state = VotingState.NOT_VOTED
                self.last_rejection = exc.message
                self._notifier.error(NoticeKind.VOTE_REJECTED, exc.message, status_code=exc.status_code)
                return False
            except TransportError as exc:
                self.voting_state = VotingState.NOT_VOTED
                self._notifier.error(NoticeKind.TRANSPORT_ERROR, str(exc))
                return False

            session = VoterSession(voter_id=voter_id, ballot_id=ballot_id).mark_voted()
            self._session = session
            self.voting_state = VotingState.VOTED
            self.registration_state = RegistrationState.REGISTERED
            self.last_rejection = None
            self._persist(session)
            self._notifier.info(NoticeKind.VOTE_CAST, "your vote has been cast", ballot_id=ballot_id)
            return True

    def _voter_id(self) -> str:
        return self._session.voter_id if self._session is not None else ""

    def _ballot_id(self) -> str:
        return self._session.ballot_id if self._session is not None else ""

    def _persist(self, session: VoterSession) -> None:
        try:
            self._store.save_session(session)
        except StorageError as exc:
            # The ledger already accepted the change; keep the ids visible.
            self._notifier.error(
                NoticeKind.STORAGE_ERROR,
                f"could not save session locally ({exc}); keep voter id {session.voter_id} "
                f"and ballot id {session.ballot_id}",
            )
