"""Tests for message envelopes."""

from dataclasses import replace

import pytest
from nacl.signing import SigningKey

from mailway.domain.envelopes import EnvelopeError, MessageEnvelope, RecipientStanza
from mailway.services.crypto import open_message, seal_message, verify_envelope
from mailway.services.keys import key_id


def test_sealed_message_opens_for_recipient_after_armor() -> None:
    signer = SigningKey.generate()
    recipient = SigningKey.generate()

    envelope = seal_message(b"secret", [recipient.verify_key], signer)
    parsed = MessageEnvelope.from_armor(envelope.to_armor())

    assert parsed == envelope
    assert open_message(parsed, recipient).plaintext == b"secret"


def test_sender_stanza_is_optional_and_deduplicated() -> None:
    signer = SigningKey.generate()
    recipient = SigningKey.generate()

    with_sender = seal_message(
        b"hi", [recipient.verify_key, recipient.verify_key, signer.verify_key], signer
    )
    without_sender = seal_message(
        b"hi", [recipient.verify_key], signer, include_sender=False
    )

    assert [stanza.key_id for stanza in with_sender.recipients] == [
        key_id(recipient.verify_key),
        key_id(signer.verify_key),
    ]
    assert [stanza.key_id for stanza in without_sender.recipients] == [
        key_id(recipient.verify_key)
    ]
    with pytest.raises(EnvelopeError, match="not a recipient"):
        open_message(without_sender, signer)


def test_tampered_ciphertext_fails_verification() -> None:
    signer = SigningKey.generate()
    recipient = SigningKey.generate()
    envelope = seal_message(b"secret", [recipient.verify_key], signer)

    flipped = bytes([envelope.ciphertext[-1] ^ 1])
    tampered = replace(envelope, ciphertext=envelope.ciphertext[:-1] + flipped)

    with pytest.raises(EnvelopeError, match="signature"):
        verify_envelope(tampered)


def test_outsider_cannot_open_message() -> None:
    signer = SigningKey.generate()
    envelope = seal_message(b"secret", [SigningKey.generate().verify_key], signer)

    with pytest.raises(EnvelopeError):
        open_message(envelope, SigningKey.generate())


@pytest.mark.parametrize(
    "armored",
    ["not armored", "MsgBegin_!!!_EndMsg", "MsgBegin_W10_EndMsg"],
)
def test_from_armor_rejects_malformed_input(armored: str) -> None:
    with pytest.raises(EnvelopeError):
        MessageEnvelope.from_armor(armored)


def test_from_payload_rejects_unknown_version() -> None:
    signer = SigningKey.generate()
    payload = seal_message(b"x", [signer.verify_key], signer).to_payload()
    payload["version"] = 99

    with pytest.raises(EnvelopeError, match="version"):
        MessageEnvelope.from_payload(payload)


def test_signed_bytes_keep_field_boundaries() -> None:
    stanza = RecipientStanza(key_id="cc", sealed_key=b"key")
    first = MessageEnvelope(1, "ab", [stanza], b"c", b"")
    shifted = MessageEnvelope(1, "a", [stanza], b"bc", b"")
    moved_stanza = MessageEnvelope(
        1, "ab", [RecipientStanza(key_id="c", sealed_key=b"ckey")], b"c", b""
    )

    assert first.signed_bytes() != shifted.signed_bytes()
    assert first.signed_bytes() != moved_stanza.signed_bytes()


def test_signature_covers_version() -> None:
    signer = SigningKey.generate()
    envelope = seal_message(b"secret", [signer.verify_key], signer)

    with pytest.raises(EnvelopeError, match="signature"):
        verify_envelope(replace(envelope, version=2))
