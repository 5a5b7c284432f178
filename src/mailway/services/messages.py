"""Message composition: seal, persist and attach to a chat."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from nacl.signing import SigningKey, VerifyKey

from mailway.domain.chats import ChatMessageRecord, ChatRecord, ComposedMessage
from mailway.services.crypto import seal_message
from mailway.services.keys import key_id

_logger = logging.getLogger(__name__)


class ChatRepository(Protocol):
    """Persistence interface for chats and their messages."""

    def find_chat(
        self, identity_key_id: str, member_key_ids: list[str]
    ) -> ChatRecord | None:
        """Return the chat for an identity with exactly these members."""

    def create_chat(
        self, identity_key_id: str, member_key_ids: list[str], title: str
    ) -> ChatRecord:
        """Create and return a new chat."""

    def create_message(  # noqa: PLR0913
        self,
        chat_id: UUID,
        sender_key_id: str,
        recipient_key_ids: list[str],
        armored_message: str,
        composed_at: datetime,
    ) -> ChatMessageRecord:
        """Persist an armored message and return it."""

    def touch_chat(self, chat_id: UUID, updated_at: datetime) -> None:
        """Update the chat's last activity timestamp."""


@dataclass
class MessageComposer:
    """Turns plaintext into a stored, signed and encrypted chat message."""

    repository: ChatRepository

    async def compose(
        self,
        plaintext: bytes,
        recipients: Sequence[VerifyKey],
        signer: SigningKey,
    ) -> ComposedMessage:
        """Seal and persist a message off the event loop."""
        if not recipients:
            raise ValueError("at least one recipient is required")
        return await asyncio.to_thread(
            self._compose, plaintext, tuple(recipients), signer
        )

    def _compose(
        self,
        plaintext: bytes,
        recipients: tuple[VerifyKey, ...],
        signer: SigningKey,
    ) -> ComposedMessage:
        envelope = seal_message(plaintext, recipients, signer)
        sender_key_id = envelope.sender_key_id
        recipient_key_ids = _unique([key_id(recipient) for recipient in recipients])
        member_key_ids = sorted({sender_key_id, *recipient_key_ids})

        chat = self.repository.find_chat(sender_key_id, member_key_ids)
        if chat is None:
            chat = self.repository.create_chat(sender_key_id, member_key_ids, title="")
            _logger.info(
                "Created chat: chat_id=%s members=%s", chat.id, len(member_key_ids)
            )

        composed_at = datetime.now(tz=UTC)
        message = self.repository.create_message(
            chat_id=chat.id,
            sender_key_id=sender_key_id,
            recipient_key_ids=recipient_key_ids,
            armored_message=envelope.to_armor(),
            composed_at=composed_at,
        )
        self.repository.touch_chat(chat.id, composed_at)
        _logger.info("Composed message: message_id=%s chat_id=%s", message.id, chat.id)
        return ComposedMessage(message=message, chat=chat)


def _unique(values: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered
