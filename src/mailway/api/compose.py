"""Compose session endpoints with simple token auth."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from mailway.api.compose_models import (
    ComposeErrorView,
    ComposeResultView,
    ComposeSessionView,
    CreateSessionRequest,
    IdentityView,
    SelectIdentityRequest,
    UpdateDraftRequest,
)
from mailway.services.compose import (
    ComposeError,
    ComposeFailure,
    ComposeSession,
    IdentityNotFoundError,
    SubmitInProgressError,
)
from mailway.services.identities import IdentityCatalog
from mailway.services.keys import (
    KeyFormatError,
    deserialize_public_key,
    key_id,
    short_key_id,
)
from mailway.services.registry import SessionLimitError

if TYPE_CHECKING:
    from mailway.containers import AppContainer
    from mailway.domain.identities import Identity
    from mailway.services.registry import ComposeSessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["compose"])


def _get_api_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.api_token


async def require_token(
    x_api_token: str | None = Header(default=None),
    api_token: str = Depends(_get_api_token),
) -> None:
    """Ensure requests include a valid API token."""
    if not x_api_token or x_api_token != api_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/identities", dependencies=[Depends(require_token)])
async def list_identities(request: Request) -> dict[str, object]:
    """Return the identities available for signing."""
    container: AppContainer = request.app.state.container
    catalog = IdentityCatalog(container.identity_repository)
    catalog.refresh()
    return {
        "identities": [
            _identity_view(identity).model_dump(mode="json")
            for identity in catalog.identities.value
        ]
    }


@router.post(
    "/compose/sessions",
    dependencies=[Depends(require_token)],
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    body: CreateSessionRequest, request: Request
) -> ComposeSessionView:
    """Open a compose session for the given recipients."""
    try:
        recipients = [deserialize_public_key(raw) for raw in body.recipient_public_keys]
    except KeyFormatError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc
    try:
        session_id, session = _registry(request).open(recipients)
    except SessionLimitError as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc)
        ) from exc
    return _session_view(session_id, session)


@router.get("/compose/sessions/{session_id}", dependencies=[Depends(require_token)])
async def get_session(session_id: UUID, request: Request) -> ComposeSessionView:
    """Return the current state of a compose session."""
    session = _session_or_404(_registry(request), session_id)
    return _session_view(session_id, session)


@router.put(
    "/compose/sessions/{session_id}/draft", dependencies=[Depends(require_token)]
)
async def update_draft(
    session_id: UUID, body: UpdateDraftRequest, request: Request
) -> ComposeSessionView:
    """Replace the draft text."""
    session = _session_or_404(_registry(request), session_id)
    session.update_draft(body.text)
    return _session_view(session_id, session)


@router.put(
    "/compose/sessions/{session_id}/identity", dependencies=[Depends(require_token)]
)
async def select_identity(
    session_id: UUID, body: SelectIdentityRequest, request: Request
) -> ComposeSessionView:
    """Select the signing identity."""
    session = _session_or_404(_registry(request), session_id)
    try:
        session.select_identity_by_id(body.identity_id)
    except IdentityNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)
        ) from exc
    return _session_view(session_id, session)


@router.post(
    "/compose/sessions/{session_id}/submit",
    dependencies=[Depends(require_token)],
    response_model=None,
)
async def submit(
    session_id: UUID, request: Request
) -> ComposeResultView | JSONResponse:
    """Compose the draft; the session closes once the message is stored."""
    registry = _registry(request)
    session = _session_or_404(registry, session_id)
    try:
        outcome = await session.submit()
    except SubmitInProgressError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=str(exc)
        ) from exc
    if isinstance(outcome, ComposeFailure):
        return _failure_response(outcome.error)
    registry.close(session_id)
    composed = outcome.message
    return ComposeResultView(
        message_id=composed.message.id,
        chat_id=composed.chat.id,
        armored_message=composed.message.armored_message,
    )


@router.delete(
    "/compose/sessions/{session_id}", dependencies=[Depends(require_token)]
)
async def close_session(
    session_id: UUID, request: Request, confirm_discard: bool = False
) -> dict[str, str]:
    """Close a session, refusing to drop a typed draft without confirmation."""
    registry = _registry(request)
    session = _session_or_404(registry, session_id)
    if session.needs_discard_confirmation and not confirm_discard:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Draft is not empty; confirm discard to close the session.",
        )
    registry.close(session_id)
    return {"status": "closed"}


def _registry(request: Request) -> ComposeSessionRegistry:
    container: AppContainer = request.app.state.container
    return container.session_registry


def _session_or_404(
    registry: ComposeSessionRegistry, session_id: UUID
) -> ComposeSession:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return session


def _identity_view(identity: Identity) -> IdentityView:
    return IdentityView(
        id=identity.id,
        name=identity.name,
        key_id=identity.key_id,
        short_key_id=short_key_id(identity.key_id),
        avatar_url=identity.avatar_url,
    )


def _session_view(session_id: UUID, session: ComposeSession) -> ComposeSessionView:
    selected = session.selected_identity.value
    return ComposeSessionView(
        session_id=session_id,
        identities=[_identity_view(identity) for identity in session.identities.value],
        selected_identity=_identity_view(selected) if selected else None,
        recipient_key_ids=[key_id(key) for key in session.recipient_public_keys],
        draft=session.draft.value,
        can_submit=session.can_submit.value,
        is_submitting=session.is_submitting.value,
    )


def _failure_response(error: Exception) -> JSONResponse:
    if isinstance(error, ComposeError):
        view = ComposeErrorView(
            error=type(error).__name__,
            description=error.description,
            failure_reason=error.failure_reason or None,
            recovery_suggestion=error.recovery_suggestion or None,
        )
        status_code = 422
    else:
        logger.warning("Compose primitive failed: %s", type(error).__name__)
        view = ComposeErrorView(error=type(error).__name__, description=str(error))
        status_code = status.HTTP_502_BAD_GATEWAY
    return JSONResponse(status_code=status_code, content=view.model_dump())
