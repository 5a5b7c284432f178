"""Domain models for signing identities."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class Keypair:
    """Key material attached to a contact.

    ``private_key`` holds the stored (serialized) signing key and is only
    present for identities owned by this device.
    """

    key_id: str
    public_key: str
    private_key: str | None = None


@dataclass(frozen=True)
class Identity:
    """A locally-held contact usable to sign outgoing messages."""

    id: UUID
    name: str
    keypair: Keypair
    created_at: datetime
    avatar_url: str | None = None

    @property
    def key_id(self) -> str:
        """Stable identifier used to compare identities across snapshots."""
        return self.keypair.key_id
