"""Signing and per-recipient encryption of chat messages."""

from collections.abc import Sequence
from dataclasses import dataclass, replace

import nacl.utils
from nacl.exceptions import BadSignatureError, CryptoError
from nacl.public import SealedBox
from nacl.secret import SecretBox
from nacl.signing import SigningKey, VerifyKey

from mailway.domain.envelopes import (
    ENVELOPE_VERSION,
    EnvelopeError,
    MessageEnvelope,
    RecipientStanza,
)
from mailway.services.keys import KeyFormatError, deserialize_public_key, key_id


@dataclass(frozen=True)
class OpenedMessage:
    """Plaintext recovered from an envelope along with its verified sender."""

    plaintext: bytes
    sender_key_id: str


def seal_message(
    plaintext: bytes,
    recipients: Sequence[VerifyKey],
    signer: SigningKey,
    *,
    include_sender: bool = True,
) -> MessageEnvelope:
    """Encrypt ``plaintext`` for every recipient and sign the result.

    The payload is encrypted once under a random secret key. That key is
    sealed to each recipient's Curve25519 form of their Ed25519 key. With
    ``include_sender`` the signer also gets a stanza so the sender can read
    its own message back.
    """
    payload_key = nacl.utils.random(SecretBox.KEY_SIZE)
    ciphertext = bytes(SecretBox(payload_key).encrypt(plaintext))

    readers: dict[str, VerifyKey] = {}
    for recipient in recipients:
        readers.setdefault(key_id(recipient), recipient)
    if include_sender:
        readers.setdefault(key_id(signer.verify_key), signer.verify_key)

    stanzas = [
        RecipientStanza(
            key_id=reader_id,
            sealed_key=bytes(
                SealedBox(reader.to_curve25519_public_key()).encrypt(payload_key)
            ),
        )
        for reader_id, reader in readers.items()
    ]
    unsigned = MessageEnvelope(
        version=ENVELOPE_VERSION,
        sender_key_id=key_id(signer.verify_key),
        recipients=stanzas,
        ciphertext=ciphertext,
        signature=b"",
    )
    signature = signer.sign(unsigned.signed_bytes()).signature
    return replace(unsigned, signature=signature)


def verify_envelope(envelope: MessageEnvelope) -> None:
    """Raise EnvelopeError unless the sender signature is valid."""
    try:
        sender = deserialize_public_key(envelope.sender_key_id)
    except KeyFormatError as exc:
        raise EnvelopeError("envelope sender key is invalid") from exc
    try:
        sender.verify(envelope.signed_bytes(), envelope.signature)
    except BadSignatureError as exc:
        raise EnvelopeError("envelope signature does not verify") from exc


def open_message(envelope: MessageEnvelope, recipient: SigningKey) -> OpenedMessage:
    """Verify and decrypt an envelope with a recipient's signing key."""
    verify_envelope(envelope)
    reader_id = key_id(recipient.verify_key)
    stanza = next(
        (item for item in envelope.recipients if item.key_id == reader_id), None
    )
    if stanza is None:
        raise EnvelopeError("key is not a recipient of this envelope")
    try:
        payload_key = SealedBox(recipient.to_curve25519_private_key()).decrypt(
            stanza.sealed_key
        )
        plaintext = SecretBox(payload_key).decrypt(envelope.ciphertext)
    except CryptoError as exc:
        raise EnvelopeError("envelope could not be decrypted") from exc
    return OpenedMessage(plaintext=plaintext, sender_key_id=envelope.sender_key_id)
