"""Supabase-backed chat and chat message repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from mailway.domain.chats import ChatMessageRecord, ChatRecord
from mailway.services.messages import ChatRepository


@dataclass
class SupabaseChatRepository(ChatRepository):
    """Supabase implementation for chats."""

    client: Client

    def find_chat(
        self, identity_key_id: str, member_key_ids: list[str]
    ) -> ChatRecord | None:
        """Return the chat whose member set matches exactly, if present."""
        members = sorted(member_key_ids)
        response = (
            self.client.table("chats")
            .select("id, identity_key_id, member_key_ids, title, updated_at")
            .eq("identity_key_id", identity_key_id)
            .contains("member_key_ids", members)
            .contained_by("member_key_ids", members)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_chat(response.data[0])

    def create_chat(
        self, identity_key_id: str, member_key_ids: list[str], title: str
    ) -> ChatRecord:
        """Create a chat row and return it."""
        response = (
            self.client.table("chats")
            .insert(
                {
                    "identity_key_id": identity_key_id,
                    "member_key_ids": sorted(member_key_ids),
                    "title": title,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create chat")
        return _parse_chat(response.data[0])

    def create_message(  # noqa: PLR0913
        self,
        chat_id: UUID,
        sender_key_id: str,
        recipient_key_ids: list[str],
        armored_message: str,
        composed_at: datetime,
    ) -> ChatMessageRecord:
        """Create a chat message row and return it."""
        response = (
            self.client.table("chat_messages")
            .insert(
                {
                    "chat_id": str(chat_id),
                    "sender_key_id": sender_key_id,
                    "recipient_key_ids": recipient_key_ids,
                    "armored_message": armored_message,
                    "composed_at": composed_at.isoformat(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create chat message")
        row = response.data[0]
        return ChatMessageRecord(
            id=UUID(row["id"]),
            chat_id=UUID(row["chat_id"]),
            sender_key_id=row["sender_key_id"],
            recipient_key_ids=list(row.get("recipient_key_ids") or []),
            armored_message=row["armored_message"],
            composed_at=datetime.fromisoformat(row["composed_at"]),
        )

    def touch_chat(self, chat_id: UUID, updated_at: datetime) -> None:
        """Update the chat's updated_at timestamp."""
        self.client.table("chats").update(
            {"updated_at": updated_at.isoformat()}
        ).eq("id", str(chat_id)).execute()


def _parse_chat(row: dict[str, object]) -> ChatRecord:
    updated_raw = row.get("updated_at")
    return ChatRecord(
        id=UUID(str(row["id"])),
        identity_key_id=str(row["identity_key_id"]),
        member_key_ids=list(row.get("member_key_ids") or []),
        title=str(row.get("title") or ""),
        updated_at=(
            datetime.fromisoformat(updated_raw)
            if isinstance(updated_raw, str) and updated_raw
            else None
        ),
    )
