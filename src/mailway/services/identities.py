"""Live catalog of locally-held signing identities."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from mailway.domain.identities import Identity
from mailway.services.observable import ObservableValue, Subscription

_logger = logging.getLogger(__name__)


class IdentityRepository(Protocol):
    """Persistence interface for identity contacts."""

    def list_identities(self) -> list[Identity]:
        """Return every identity in a stable order."""

    def subscribe(self, listener: Callable[[], None]) -> Subscription:
        """Register a listener called after identity rows change."""


@dataclass
class IdentityCatalog:
    """Observable, continuously refreshed list of identities."""

    repository: IdentityRepository
    identities: ObservableValue[list[Identity]] = field(
        default_factory=lambda: ObservableValue([])
    )
    _subscription: Subscription | None = field(default=None, repr=False)

    @property
    def is_active(self) -> bool:
        return self._subscription is not None

    def activate(self) -> None:
        """Fetch the current identities and start following changes."""
        if self._subscription is not None:
            return
        self._subscription = self.repository.subscribe(self.refresh)
        self.refresh()

    def refresh(self) -> None:
        """Re-query the store and publish the snapshot if it changed."""
        snapshot = list(self.repository.list_identities())
        if snapshot == self.identities.value:
            return
        _logger.info("Identity catalog updated: count=%s", len(snapshot))
        self.identities.value = snapshot

    def find(self, identity_id: UUID) -> Identity | None:
        """Return the identity with ``identity_id`` from the current snapshot."""
        return next(
            (item for item in self.identities.value if item.id == identity_id), None
        )

    def contains(self, identity: Identity) -> bool:
        return any(item.key_id == identity.key_id for item in self.identities.value)

    def close(self) -> None:
        """Stop following store changes."""
        if self._subscription is None:
            return
        self._subscription.dispose()
        self._subscription = None

    def __enter__(self) -> "IdentityCatalog":
        self.activate()
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()
