"""Domain models for signed and encrypted message envelopes."""

import base64
import binascii
import json
import struct
from dataclasses import dataclass

ENVELOPE_VERSION = 1
ARMOR_PREFIX = "MsgBegin_"
ARMOR_SUFFIX = "_EndMsg"


class EnvelopeError(ValueError):
    """Raised when an envelope cannot be parsed, verified or opened."""


@dataclass(frozen=True)
class RecipientStanza:
    """The payload key sealed for a single recipient."""

    key_id: str
    sealed_key: bytes


@dataclass(frozen=True)
class MessageEnvelope:
    """Encrypted payload plus per-recipient stanzas and sender signature."""

    version: int
    sender_key_id: str
    recipients: list[RecipientStanza]
    ciphertext: bytes
    signature: bytes

    def signed_bytes(self) -> bytes:
        """Return the byte string covered by the sender signature.

        Every field is prefixed with its length as a big-endian uint32.
        """
        fields = [
            str(self.version).encode("ascii"),
            self.sender_key_id.encode("ascii"),
            self.ciphertext,
        ]
        for stanza in self.recipients:
            fields.append(stanza.key_id.encode("ascii"))
            fields.append(stanza.sealed_key)
        return b"".join(struct.pack(">I", len(item)) + item for item in fields)

    def to_payload(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""
        return {
            "version": self.version,
            "sender": self.sender_key_id,
            "recipients": [
                {"key_id": stanza.key_id, "sealed_key": _b64(stanza.sealed_key)}
                for stanza in self.recipients
            ],
            "ciphertext": _b64(self.ciphertext),
            "signature": _b64(self.signature),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "MessageEnvelope":
        """Build an envelope from its JSON representation."""
        try:
            version = int(payload["version"])
            recipients_raw = payload["recipients"]
            if not isinstance(recipients_raw, list):
                raise EnvelopeError("recipients must be a list")
            recipients = [
                RecipientStanza(
                    key_id=str(item["key_id"]),
                    sealed_key=_unb64(str(item["sealed_key"])),
                )
                for item in recipients_raw
            ]
            envelope = cls(
                version=version,
                sender_key_id=str(payload["sender"]),
                recipients=recipients,
                ciphertext=_unb64(str(payload["ciphertext"])),
                signature=_unb64(str(payload["signature"])),
            )
        except EnvelopeError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise EnvelopeError("malformed envelope payload") from exc
        if envelope.version != ENVELOPE_VERSION:
            raise EnvelopeError(f"unsupported envelope version: {envelope.version}")
        return envelope

    def to_armor(self) -> str:
        """Serialize to the armored text form stored with chat messages."""
        raw = json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))
        encoded = base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")
        return f"{ARMOR_PREFIX}{encoded.rstrip('=')}{ARMOR_SUFFIX}"

    @classmethod
    def from_armor(cls, armored: str) -> "MessageEnvelope":
        """Parse the armored text form."""
        text = armored.strip()
        if not (text.startswith(ARMOR_PREFIX) and text.endswith(ARMOR_SUFFIX)):
            raise EnvelopeError("missing armor markers")
        body = text[len(ARMOR_PREFIX) : -len(ARMOR_SUFFIX)]
        padded = body + "=" * (-len(body) % 4)
        try:
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            payload = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError) as exc:
            raise EnvelopeError("armored body is not valid") from exc
        if not isinstance(payload, dict):
            raise EnvelopeError("envelope payload must be a JSON object")
        return cls.from_payload(payload)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as exc:
        raise EnvelopeError("field must be valid base64") from exc
