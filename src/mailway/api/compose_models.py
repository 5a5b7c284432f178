"""Pydantic models for the compose API."""

from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from mailway.config import parse_recipient_keys


class CreateSessionRequest(BaseModel):
    """Open a compose session for a set of recipients.

    Keys may be sent as a list or as one comma-separated string.
    """

    recipient_public_keys: list[str] = Field(default_factory=list)

    @field_validator("recipient_public_keys", mode="before")
    @classmethod
    def _split_keys(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_recipient_keys(value)
        return value


class UpdateDraftRequest(BaseModel):
    """Replace the draft text."""

    text: str


class SelectIdentityRequest(BaseModel):
    """Select the signing identity by contact id."""

    identity_id: UUID


class IdentityView(BaseModel):
    """Identity as shown in pickers and title views."""

    id: UUID
    name: str
    key_id: str
    short_key_id: str
    avatar_url: str | None = None


class ComposeSessionView(BaseModel):
    """Observable outputs of a compose session."""

    session_id: UUID
    identities: list[IdentityView]
    selected_identity: IdentityView | None = None
    recipient_key_ids: list[str]
    draft: str
    can_submit: bool
    is_submitting: bool


class ComposeErrorView(BaseModel):
    """Failure details for a submit attempt."""

    error: str
    description: str
    failure_reason: str | None = None
    recovery_suggestion: str | None = None


class ComposeResultView(BaseModel):
    """Identifiers of a successfully composed message."""

    message_id: UUID
    chat_id: UUID
    armored_message: str
