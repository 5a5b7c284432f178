"""Ed25519 key serialization helpers."""

from dataclasses import dataclass

from nacl.encoding import HexEncoder
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey


class KeyFormatError(ValueError):
    """Raised when serialized key material cannot be parsed."""


@dataclass(frozen=True)
class GeneratedKeys:
    """Serialized form of a freshly generated identity key pair."""

    key_id: str
    public_key: str
    private_key: str


def serialize_public_key(verify_key: VerifyKey) -> str:
    return verify_key.encode(encoder=HexEncoder).decode("ascii")


def serialize_private_key(signing_key: SigningKey) -> str:
    return signing_key.encode(encoder=HexEncoder).decode("ascii")


def key_id(verify_key: VerifyKey) -> str:
    """Return the stable key id for a public key."""
    return serialize_public_key(verify_key)


def short_key_id(full_key_id: str) -> str:
    """Format the last 8 characters of a key id in groups of 4 for display."""
    suffix = full_key_id[-8:]
    return " ".join(suffix[index : index + 4] for index in range(0, len(suffix), 4))


def deserialize_public_key(text: str) -> VerifyKey:
    """Parse a hex-encoded Ed25519 public key."""
    try:
        return VerifyKey(text.strip().lower().encode("ascii"), encoder=HexEncoder)
    except (CryptoError, TypeError, ValueError, UnicodeError) as exc:
        raise KeyFormatError(f"invalid public key: {text[:16]!r}") from exc


def deserialize_private_key(text: str | None) -> SigningKey | None:
    """Parse a stored signing key, returning None when it is unusable."""
    if not text:
        return None
    try:
        return SigningKey(text.strip().lower().encode("ascii"), encoder=HexEncoder)
    except (CryptoError, TypeError, ValueError, UnicodeError):
        return None


def generate_identity_keys() -> GeneratedKeys:
    """Generate a new Ed25519 key pair in serialized form."""
    signing_key = SigningKey.generate()
    return GeneratedKeys(
        key_id=key_id(signing_key.verify_key),
        public_key=serialize_public_key(signing_key.verify_key),
        private_key=serialize_private_key(signing_key),
    )
