"""Curve-prefixed key strings and Ed25519 signing."""

from __future__ import annotations

from dataclasses import dataclass

import base58
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

ED25519 = "ed25519"
ED25519_KEY_TYPE = 0

_PUBLIC_KEY_LENGTH = 32
_SEED_LENGTH = 32
_SIGNATURE_LENGTH = 64


class KeyFormatError(ValueError):
    """Raised when a key string is malformed or uses an unsupported curve."""


def _split_key(raw: str, kind: str) -> tuple[str, bytes]:
    curve, sep, body = raw.strip().partition(":")
    if not sep:
        # Bare base58 strings are treated as ed25519, matching the wallet format.
        curve, body = ED25519, curve
    if curve.lower() != ED25519:
        raise KeyFormatError(f"unsupported {kind} curve {curve!r}; only ed25519 keys can sign")
    try:
        data = base58.b58decode(body)
    except ValueError as exc:
        raise KeyFormatError(f"{kind} is not valid base58: {raw!r}") from exc
    return ED25519, data


@dataclass(frozen=True)
class PublicKey:
    data: bytes
    key_type: int = ED25519_KEY_TYPE

    @classmethod
    def parse(cls, raw: str) -> "PublicKey":
        _, data = _split_key(raw, "public key")
        if len(data) != _PUBLIC_KEY_LENGTH:
            raise KeyFormatError(
                f"public key must be {_PUBLIC_KEY_LENGTH} bytes, got {len(data)}: {raw!r}"
            )
        return cls(data)

    @property
    def base58_body(self) -> str:
        return base58.b58encode(self.data).decode("ascii")

    def __str__(self) -> str:
        return f"{ED25519}:{self.base58_body}"


@dataclass(frozen=True)
class SecretKey:
    """Ed25519 secret key holding the 32-byte seed."""

    seed: bytes

    @classmethod
    def parse(cls, raw: str) -> "SecretKey":
        _, data = _split_key(raw, "private key")
        if len(data) == _SEED_LENGTH + _PUBLIC_KEY_LENGTH:
            seed, embedded_public = data[:_SEED_LENGTH], data[_SEED_LENGTH:]
            key = cls(seed)
            if key.public_key().data != embedded_public:
                raise KeyFormatError("private key does not embed its own public key")
            return key
        if len(data) == _SEED_LENGTH:
            return cls(data)
        raise KeyFormatError(
            f"private key must be {_SEED_LENGTH} or {_SEED_LENGTH + _PUBLIC_KEY_LENGTH} bytes, got {len(data)}"
        )

    def _private(self) -> Ed25519PrivateKey:
        return Ed25519PrivateKey.from_private_bytes(self.seed)

    def public_key(self) -> PublicKey:
        raw = self._private().public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return PublicKey(raw)

    def sign(self, message: bytes) -> "Signature":
        return Signature(self._private().sign(message))

    def __str__(self) -> str:
        expanded = self.seed + self.public_key().data
        return f"{ED25519}:{base58.b58encode(expanded).decode('ascii')}"

    def __repr__(self) -> str:
        return f"SecretKey(public_key={self.public_key()})"


@dataclass(frozen=True)
class Signature:
    data: bytes
    key_type: int = ED25519_KEY_TYPE

    def __post_init__(self) -> None:
        if len(self.data) != _SIGNATURE_LENGTH:
            raise KeyFormatError(f"signature must be {_SIGNATURE_LENGTH} bytes")

    def __str__(self) -> str:
        return f"{ED25519}:{base58.b58encode(self.data).decode('ascii')}"

