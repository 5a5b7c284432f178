"""Shared test fixtures."""

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest
from nacl.signing import SigningKey, VerifyKey

from mailway.config import Settings
from mailway.containers import AppContainer
from mailway.domain.chats import ChatMessageRecord, ChatRecord, ComposedMessage
from mailway.domain.identities import Identity, Keypair
from mailway.services.identities import IdentityRepository
from mailway.services.keys import key_id, serialize_private_key, serialize_public_key
from mailway.services.messages import ChatRepository, MessageComposer
from mailway.services.observable import ObservableValue, Subscription
from mailway.services.registry import ComposeSessionRegistry

_EPOCH = datetime(2024, 1, 1, tzinfo=UTC)


def make_identity(
    name: str, order: int = 0, *, with_private_key: bool = True
) -> tuple[Identity, SigningKey]:
    """Build an identity backed by a fresh signing key."""
    signing_key = SigningKey.generate()
    identity = Identity(
        id=uuid4(),
        name=name,
        keypair=Keypair(
            key_id=key_id(signing_key.verify_key),
            public_key=serialize_public_key(signing_key.verify_key),
            private_key=(
                serialize_private_key(signing_key) if with_private_key else None
            ),
        ),
        created_at=_EPOCH + timedelta(minutes=order),
    )
    return identity, signing_key


def recipient_keys(count: int) -> list[VerifyKey]:
    return [SigningKey.generate().verify_key for _ in range(count)]


@dataclass
class InMemoryIdentityRepository(IdentityRepository):
    """In-memory identity repository for tests."""

    identities: list[Identity] = field(default_factory=list)
    revision: ObservableValue[int] = field(default_factory=lambda: ObservableValue(0))
    queries: int = 0

    def list_identities(self) -> list[Identity]:
        self.queries += 1
        return sorted(self.identities, key=lambda item: (item.created_at, item.id))

    def subscribe(self, listener: Callable[[], None]) -> Subscription:
        return self.revision.subscribe(
            lambda _revision: listener(), emit_current=False
        )

    def add(self, identity: Identity) -> None:
        self.identities.append(identity)
        self.notify()

    def remove(self, identity: Identity) -> None:
        self.identities = [
            item for item in self.identities if item.key_id != identity.key_id
        ]
        self.notify()

    def replace_all(self, identities: list[Identity]) -> None:
        self.identities = list(identities)
        self.notify()

    def notify(self) -> None:
        self.revision.value = self.revision.value + 1


@dataclass
class InMemoryChatRepository(ChatRepository):
    """In-memory chat repository for tests."""

    chats: dict[UUID, ChatRecord] = field(default_factory=dict)
    messages: dict[UUID, ChatMessageRecord] = field(default_factory=dict)
    touched: list[UUID] = field(default_factory=list)

    def find_chat(
        self, identity_key_id: str, member_key_ids: list[str]
    ) -> ChatRecord | None:
        for chat in self.chats.values():
            if chat.identity_key_id == identity_key_id and sorted(
                chat.member_key_ids
            ) == sorted(member_key_ids):
                return chat
        return None

    def create_chat(
        self, identity_key_id: str, member_key_ids: list[str], title: str
    ) -> ChatRecord:
        chat = ChatRecord(
            id=uuid4(),
            identity_key_id=identity_key_id,
            member_key_ids=sorted(member_key_ids),
            title=title,
        )
        self.chats[chat.id] = chat
        return chat

    def create_message(  # noqa: PLR0913
        self,
        chat_id: UUID,
        sender_key_id: str,
        recipient_key_ids: list[str],
        armored_message: str,
        composed_at: datetime,
    ) -> ChatMessageRecord:
        message = ChatMessageRecord(
            id=uuid4(),
            chat_id=chat_id,
            sender_key_id=sender_key_id,
            recipient_key_ids=list(recipient_key_ids),
            armored_message=armored_message,
            composed_at=composed_at,
        )
        self.messages[message.id] = message
        return message

    def touch_chat(self, chat_id: UUID, updated_at: datetime) -> None:
        self.touched.append(chat_id)


@dataclass
class RecordingComposer:
    """Composer double that records calls and returns a canned result."""

    error: Exception | None = None
    gate: asyncio.Event | None = None
    calls: list[tuple[bytes, list[VerifyKey], SigningKey]] = field(
        default_factory=list
    )
    results: list[ComposedMessage] = field(default_factory=list)

    async def compose(
        self,
        plaintext: bytes,
        recipients: Sequence[VerifyKey],
        signer: SigningKey,
    ) -> ComposedMessage:
        self.calls.append((plaintext, list(recipients), signer))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        chat = ChatRecord(
            id=uuid4(),
            identity_key_id=key_id(signer.verify_key),
            member_key_ids=[],
            title="",
        )
        message = ChatMessageRecord(
            id=uuid4(),
            chat_id=chat.id,
            sender_key_id=key_id(signer.verify_key),
            recipient_key_ids=[key_id(item) for item in recipients],
            armored_message="MsgBegin_fake_EndMsg",
            composed_at=datetime.now(tz=UTC),
        )
        composed = ComposedMessage(message=message, chat=chat)
        self.results.append(composed)
        return composed


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        api_token="api-token",
    )


@pytest.fixture
def identity_repository() -> InMemoryIdentityRepository:
    return InMemoryIdentityRepository()


@pytest.fixture
def chat_repository() -> InMemoryChatRepository:
    return InMemoryChatRepository()


@pytest.fixture
def container(
    settings: Settings,
    identity_repository: InMemoryIdentityRepository,
    chat_repository: InMemoryChatRepository,
) -> AppContainer:
    message_composer = MessageComposer(chat_repository)
    session_registry = ComposeSessionRegistry(
        identity_repository=identity_repository,
        composer=message_composer,
        max_open_sessions=settings.max_open_sessions,
    )

    async def close_resources() -> None:
        session_registry.close_all()

    return AppContainer(
        settings=settings,
        identity_repository=identity_repository,
        chat_repository=chat_repository,
        message_composer=message_composer,
        session_registry=session_registry,
        close_resources=close_resources,
    )
