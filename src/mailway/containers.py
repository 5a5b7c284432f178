"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from mailway.adapters.supabase_chat_repository import SupabaseChatRepository
from mailway.adapters.supabase_identity_repository import (
    SupabaseIdentityRepository,
)
from mailway.config import Settings
from mailway.services.identities import IdentityRepository
from mailway.services.messages import ChatRepository, MessageComposer
from mailway.services.registry import ComposeSessionRegistry


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    identity_repository: IdentityRepository
    chat_repository: ChatRepository
    message_composer: MessageComposer
    session_registry: ComposeSessionRegistry
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    identity_repository = SupabaseIdentityRepository(
        supabase_client, batch_size=resolved_settings.identity_batch_size
    )
    chat_repository = SupabaseChatRepository(supabase_client)
    message_composer = MessageComposer(chat_repository)
    session_registry = ComposeSessionRegistry(
        identity_repository=identity_repository,
        composer=message_composer,
        max_open_sessions=resolved_settings.max_open_sessions,
    )

    async def close_resources() -> None:
        session_registry.close_all()

    return AppContainer(
        settings=resolved_settings,
        identity_repository=identity_repository,
        chat_repository=chat_repository,
        message_composer=message_composer,
        session_registry=session_registry,
        close_resources=close_resources,
    )
