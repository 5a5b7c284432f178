"""Domain models for chats and composed messages."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class ChatRecord:
    """A conversation between an identity and a fixed set of members."""

    id: UUID
    identity_key_id: str
    member_key_ids: list[str]
    title: str
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ChatMessageRecord:
    """A persisted, armored chat message."""

    id: UUID
    chat_id: UUID
    sender_key_id: str
    recipient_key_ids: list[str]
    armored_message: str
    composed_at: datetime


@dataclass(frozen=True)
class ComposedMessage:
    """Result of a successful compose: the stored message and its chat."""

    message: ChatMessageRecord
    chat: ChatRecord
