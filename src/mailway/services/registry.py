"""Bookkeeping for compose sessions opened through the API."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import UUID, uuid4

from nacl.signing import VerifyKey

from mailway.services.compose import ComposeSession, Composer, open_compose_session
from mailway.services.identities import IdentityRepository

_logger = logging.getLogger(__name__)


class SessionLimitError(RuntimeError):
    """Raised when no more compose sessions may be opened."""


@dataclass
class ComposeSessionRegistry:
    """Opens, tracks and closes compose sessions by id."""

    identity_repository: IdentityRepository
    composer: Composer
    max_open_sessions: int = 64
    sessions: dict[UUID, ComposeSession] = field(default_factory=dict)

    def open(
        self, recipient_public_keys: Sequence[VerifyKey]
    ) -> tuple[UUID, ComposeSession]:
        """Open a session for the recipients and return it with its id."""
        if len(self.sessions) >= self.max_open_sessions:
            raise SessionLimitError("too many open compose sessions")
        session = open_compose_session(
            self.identity_repository,
            self.composer,
            recipient_public_keys,
        )
        session_id = uuid4()
        self.sessions[session_id] = session
        _logger.info(
            "Opened compose session: session_id=%s recipients=%s",
            session_id,
            len(recipient_public_keys),
        )
        return session_id, session

    def get(self, session_id: UUID) -> ComposeSession | None:
        return self.sessions.get(session_id)

    def close(self, session_id: UUID) -> bool:
        """Close and forget a session. Returns False if it was unknown."""
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        _logger.info("Closed compose session: session_id=%s", session_id)
        return True

    def close_all(self) -> None:
        for session_id in list(self.sessions):
            self.close(session_id)
