"""Compose session state machine.

A session binds a draft, a fixed set of recipient keys and the selected
signing identity. It follows the identity catalog while the compose flow is
open and turns ``submit`` into exactly one ``ComposeOutcome``.
"""

import asyncio
import logging
import weakref
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from nacl.signing import SigningKey, VerifyKey

from mailway.domain.chats import ComposedMessage
from mailway.domain.identities import Identity
from mailway.services.identities import IdentityCatalog, IdentityRepository
from mailway.services.keys import deserialize_private_key, key_id
from mailway.services.observable import DisposeBag, ObservableValue

_logger = logging.getLogger(__name__)


class ComposeError(Exception):
    """Base class for compose validation failures."""

    description = "The message could not be composed."
    failure_reason = ""
    recovery_suggestion = ""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.description)


class IdentityNotFoundError(ComposeError):
    description = "Identity not found."
    failure_reason = "No signing identity is selected or its key is unavailable."
    recovery_suggestion = "Select an identity with a private key and try again."


class RecipientNotFoundError(ComposeError):
    description = "Recipient not found."
    failure_reason = "The message has no recipients."
    recovery_suggestion = "Add at least one recipient and try again."


class EmptyMessageError(ComposeError):
    description = "Empty message."
    failure_reason = "The message text is empty."
    recovery_suggestion = "Write a message before sending."


class SubmitInProgressError(RuntimeError):
    """Raised when a submit is requested while another is still running."""


@dataclass(frozen=True)
class ComposeSuccess:
    message: ComposedMessage


@dataclass(frozen=True)
class ComposeFailure:
    error: Exception


ComposeOutcome = ComposeSuccess | ComposeFailure


class Composer(Protocol):
    """Interface for the sign, encrypt and persist primitive."""

    async def compose(
        self,
        plaintext: bytes,
        recipients: Sequence[VerifyKey],
        signer: SigningKey,
    ) -> ComposedMessage:
        """Return the stored message or raise."""


def reduce_selection(
    previous: Identity | None, identities: Sequence[Identity]
) -> Identity | None:
    """Return the selection after the identity list changes.

    A selection whose key id is still listed is kept (as the newest record
    for that key). Otherwise the first identity is selected, or none.
    """
    if previous is not None:
        for identity in identities:
            if identity.key_id == previous.key_id:
                return identity
    return identities[0] if identities else None


@dataclass(frozen=True)
class _ComposeRequest:
    plaintext: bytes
    recipients: tuple[VerifyKey, ...]
    signer: SigningKey


class ComposeSession:
    """State for one compose flow."""

    def __init__(
        self,
        catalog: IdentityCatalog,
        composer: Composer,
        recipient_public_keys: Sequence[VerifyKey],
        *,
        owns_catalog: bool = False,
    ) -> None:
        self.catalog = catalog
        self.composer = composer
        self.recipient_public_keys: tuple[VerifyKey, ...] = tuple(
            recipient_public_keys
        )
        self.draft: ObservableValue[str] = ObservableValue("")
        self.can_submit: ObservableValue[bool] = ObservableValue(False)
        self.selected_identity: ObservableValue[Identity | None] = ObservableValue(
            None
        )
        self.selected_private_key: ObservableValue[SigningKey | None] = (
            ObservableValue(None)
        )
        self.is_submitting: ObservableValue[bool] = ObservableValue(False)
        self._owns_catalog = owns_catalog
        self._closed = False
        self._disposables = DisposeBag()

        self._disposables.add(self.draft.subscribe(self._on_draft))
        self._disposables.add(self.selected_identity.subscribe(self._resolve_key))
        self._disposables.add(catalog.identities.subscribe(self._on_identities))

    @property
    def identities(self) -> ObservableValue[list[Identity]]:
        return self.catalog.identities

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def needs_discard_confirmation(self) -> bool:
        """True when closing the flow would throw away typed text."""
        return bool(self.draft.value.strip())

    def update_draft(self, text: str) -> None:
        self._ensure_open()
        self.draft.value = text

    def select_identity(self, identity: Identity) -> None:
        """Select ``identity``; it must be part of the current catalog."""
        self._ensure_open()
        if not self.catalog.contains(identity):
            raise IdentityNotFoundError(f"identity {identity.id} is not available")
        self.selected_identity.value = identity

    def select_identity_by_id(self, identity_id: UUID) -> Identity:
        self._ensure_open()
        identity = self.catalog.find(identity_id)
        if identity is None:
            raise IdentityNotFoundError(f"identity {identity_id} is not available")
        self.selected_identity.value = identity
        return identity

    async def submit(self) -> ComposeOutcome:
        """Validate the draft and compose it.

        Validation failures return immediately without touching the
        composer. Errors raised by the composer are returned unchanged as a
        ``ComposeFailure``.
        Raises ``SubmitInProgressError`` while an earlier submit is running.
        """
        self._ensure_open()
        self._ensure_not_submitting()
        prepared = self._prepare()
        if isinstance(prepared, ComposeFailure):
            return prepared
        self.is_submitting.value = True
        try:
            return await _run_compose(self.composer, prepared)
        finally:
            if not self._closed:
                self.is_submitting.value = False

    def submit_in_background(
        self, on_outcome: Callable[[ComposeOutcome], None]
    ) -> "asyncio.Future[ComposeOutcome]":
        """Schedule a submit and deliver its outcome while the session lives.

        The scheduled work does not reference the session; delivery goes
        through a weak reference and is skipped once the session is closed
        or collected.
        """
        self._ensure_open()
        self._ensure_not_submitting()
        loop = asyncio.get_running_loop()
        prepared = self._prepare()
        future: asyncio.Future[ComposeOutcome]
        if isinstance(prepared, ComposeFailure):
            future = loop.create_future()
            future.set_result(prepared)
        else:
            self.is_submitting.value = True
            future = loop.create_task(_run_compose(self.composer, prepared))

        session_ref = weakref.ref(self)

        def _deliver(done: "asyncio.Future[ComposeOutcome]") -> None:
            session = session_ref()
            if session is None or session.closed:
                _logger.debug("Dropping compose outcome for a closed session")
                return
            session.is_submitting.value = False
            if done.cancelled():
                return
            on_outcome(done.result())

        future.add_done_callback(_deliver)
        return future

    def close(self) -> None:
        """Release every subscription held by the session."""
        if self._closed:
            return
        self._closed = True
        self._disposables.dispose()
        if self._owns_catalog:
            self.catalog.close()

    def __enter__(self) -> "ComposeSession":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("compose session is closed")

    def _ensure_not_submitting(self) -> None:
        if self.is_submitting.value:
            raise SubmitInProgressError("a submit is already in progress")

    def _prepare(self) -> _ComposeRequest | ComposeFailure:
        signer = self.selected_private_key.value
        if self.selected_identity.value is None or signer is None:
            return _reject(IdentityNotFoundError())
        if not self.recipient_public_keys:
            return _reject(RecipientNotFoundError())
        plaintext = self.draft.value.strip()
        if not plaintext:
            return _reject(EmptyMessageError())
        return _ComposeRequest(
            plaintext=plaintext.encode("utf-8"),
            recipients=self.recipient_public_keys,
            signer=signer,
        )

    def _on_draft(self, text: str) -> None:
        self.can_submit.value = bool(text.strip())

    def _on_identities(self, identities: list[Identity]) -> None:
        current = self.selected_identity.value
        selection = reduce_selection(current, identities)
        if current is not None and (
            selection is None or selection.key_id != current.key_id
        ):
            _logger.info(
                "Selected identity removed, falling back: key_id=%s",
                selection.key_id if selection else None,
            )
        if selection != current:
            self.selected_identity.value = selection

    def _resolve_key(self, identity: Identity | None) -> None:
        signer = None
        if identity is not None:
            signer = deserialize_private_key(identity.keypair.private_key)
            if signer is not None and key_id(signer.verify_key) != identity.key_id:
                _logger.warning(
                    "Private key does not match identity: identity_id=%s",
                    identity.id,
                )
                signer = None
        self.selected_private_key.value = signer


def open_compose_session(
    repository: IdentityRepository,
    composer: Composer,
    recipient_public_keys: Sequence[VerifyKey],
) -> ComposeSession:
    """Activate a fresh identity catalog and open a session that owns it."""
    catalog = IdentityCatalog(repository=repository)
    catalog.activate()
    return ComposeSession(
        catalog, composer, recipient_public_keys, owns_catalog=True
    )


def _reject(error: ComposeError) -> ComposeFailure:
    _logger.info("Compose rejected: %s", type(error).__name__)
    return ComposeFailure(error)


async def _run_compose(composer: Composer, request: _ComposeRequest) -> ComposeOutcome:
    try:
        message = await composer.compose(
            request.plaintext, request.recipients, request.signer
        )
    except Exception as exc:  # noqa: BLE001
        _logger.exception("Compose failed")
        return ComposeFailure(exc)
    return ComposeSuccess(message)
