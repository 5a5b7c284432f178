"""Tests for the compose session registry."""

import pytest

from mailway.services.registry import ComposeSessionRegistry, SessionLimitError
from tests.conftest import (
    InMemoryIdentityRepository,
    RecordingComposer,
    make_identity,
    recipient_keys,
)


def test_open_get_and_close_session() -> None:
    alice, _ = make_identity("Alice")
    repository = InMemoryIdentityRepository(identities=[alice])
    registry = ComposeSessionRegistry(repository, RecordingComposer())

    session_id, session = registry.open(recipient_keys(1))

    assert registry.get(session_id) is session
    assert session.selected_identity.value == alice
    assert registry.close(session_id) is True
    assert registry.close(session_id) is False
    assert session.closed
    assert repository.revision.subscriber_count == 0


def test_open_respects_session_limit() -> None:
    registry = ComposeSessionRegistry(
        InMemoryIdentityRepository(), RecordingComposer(), max_open_sessions=1
    )
    registry.open(recipient_keys(1))

    with pytest.raises(SessionLimitError):
        registry.open(recipient_keys(1))


def test_close_all_closes_every_session() -> None:
    registry = ComposeSessionRegistry(InMemoryIdentityRepository(), RecordingComposer())
    sessions = [registry.open(recipient_keys(1))[1] for _ in range(3)]

    registry.close_all()

    assert registry.sessions == {}
    assert all(session.closed for session in sessions)
