"""Supabase-backed identity repository."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from mailway.domain.identities import Identity, Keypair
from mailway.services.identities import IdentityRepository
from mailway.services.keys import GeneratedKeys
from mailway.services.observable import ObservableValue, Subscription

_IDENTITY_COLUMNS = (
    "id, name, avatar_url, created_at, keypairs(key_id, public_key, private_key)"
)


@dataclass
class SupabaseIdentityRepository(IdentityRepository):
    """Supabase implementation for identity contacts.

    Writes made through this repository bump ``revision``, which is what
    ``subscribe`` listens to.
    """

    client: Client
    revision: ObservableValue[int] = field(default_factory=lambda: ObservableValue(0))
    batch_size: int = 20

    def list_identities(self) -> list[Identity]:
        """Return all identity contacts ordered by creation time.

        Rows are fetched in batches of ``batch_size`` until a short batch.
        """
        identities: list[Identity] = []
        start = 0
        while True:
            rows = self._fetch_batch(start)
            for row in rows:
                identity = _parse_identity(row)
                if identity is not None:
                    identities.append(identity)
            if len(rows) < self.batch_size:
                return identities
            start += self.batch_size

    def _fetch_batch(self, start: int) -> list[dict[str, object]]:
        response = (
            self.client.table("contacts")
            .select(_IDENTITY_COLUMNS)
            .eq("is_identity", True)
            .order("created_at")
            .order("id")
            .range(start, start + self.batch_size - 1)
            .execute()
        )
        return response.data or []

    def subscribe(self, listener: Callable[[], None]) -> Subscription:
        """Call ``listener`` after every identity write."""
        return self.revision.subscribe(
            lambda _revision: listener(), emit_current=False
        )

    def create_identity(
        self, name: str, keys: GeneratedKeys, avatar_url: str | None = None
    ) -> Identity:
        """Create an identity contact with its key pair."""
        response = (
            self.client.table("contacts")
            .insert({"name": name, "avatar_url": avatar_url, "is_identity": True})
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create identity contact")
        contact_row = response.data[0]
        keypair_response = (
            self.client.table("keypairs")
            .insert(
                {
                    "contact_id": contact_row["id"],
                    "key_id": keys.key_id,
                    "public_key": keys.public_key,
                    "private_key": keys.private_key,
                }
            )
            .execute()
        )
        if not keypair_response.data:
            raise RuntimeError("Failed to store identity keypair")
        identity = _parse_identity(
            {**contact_row, "keypairs": [keypair_response.data[0]]}
        )
        if identity is None:
            raise RuntimeError("Stored identity is missing its keypair")
        self._notify()
        return identity

    def rename_identity(self, identity_id: UUID, name: str) -> None:
        """Update an identity's display name."""
        self.client.table("contacts").update({"name": name}).eq(
            "id", str(identity_id)
        ).execute()
        self._notify()

    def delete_identity(self, identity_id: UUID) -> None:
        """Delete an identity contact and its key pair."""
        self.client.table("keypairs").delete().eq(
            "contact_id", str(identity_id)
        ).execute()
        self.client.table("contacts").delete().eq("id", str(identity_id)).execute()
        self._notify()

    def _notify(self) -> None:
        self.revision.value = self.revision.value + 1


def _parse_identity(row: dict[str, object]) -> Identity | None:
    """Parse a contact row with embedded keypair; None if it has no keys."""
    keypairs = row.get("keypairs")
    if isinstance(keypairs, list):
        keypair_row = keypairs[0] if keypairs else None
    else:
        keypair_row = keypairs
    if not isinstance(keypair_row, dict):
        return None
    created_raw = row.get("created_at")
    created_at = (
        datetime.fromisoformat(created_raw)
        if isinstance(created_raw, str) and created_raw
        else datetime.now(tz=UTC)
    )
    return Identity(
        id=UUID(str(row["id"])),
        name=str(row.get("name") or ""),
        keypair=Keypair(
            key_id=str(keypair_row["key_id"]),
            public_key=str(keypair_row["public_key"]),
            private_key=keypair_row.get("private_key"),
        ),
        created_at=created_at,
        avatar_url=row.get("avatar_url"),
    )
