"""Borsh encoding of transactions for network transmission.

Layout follows the NEAR protocol: little-endian fixed width integers,
u32-length-prefixed strings and byte vectors, keys and signatures tagged
with a one-byte curve identifier, actions tagged with their enum index.
"""

from __future__ import annotations

import hashlib
import struct
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .transaction import SignedTransaction, UnsignedTransaction

FUNCTION_CALL_ACTION_INDEX = 2


class WireEncodingError(ValueError):
    """Raised when a value cannot be represented on the wire."""


def _u8(value: int) -> bytes:
    return struct.pack("<B", value)


def _u32(value: int) -> bytes:
    return struct.pack("<I", value)


def _u64(value: int) -> bytes:
    if not 0 <= value < 2**64:
        raise WireEncodingError(f"value {value} does not fit in u64")
    return struct.pack("<Q", value)


def _u128(value: int) -> bytes:
    if not 0 <= value < 2**128:
        raise WireEncodingError(f"value {value} does not fit in u128")
    return value.to_bytes(16, "little")


def _bytes(data: bytes) -> bytes:
    return _u32(len(data)) + data


def _string(value: str) -> bytes:
    return _bytes(value.encode("utf-8"))


def _action(action: object) -> bytes:
    from .transaction import FunctionCallAction

    if isinstance(action, FunctionCallAction):
        return (
            _u8(FUNCTION_CALL_ACTION_INDEX)
            + _string(action.method_name)
            + _bytes(action.args)
            + _u64(action.gas)
            + _u128(action.deposit)
        )
    raise WireEncodingError(f"unsupported action type: {type(action).__name__}")


def serialize_transaction(tx: "UnsignedTransaction") -> bytes:
    if len(tx.block_hash) != 32:
        raise WireEncodingError("block hash must be 32 bytes")
    parts = [
        _string(tx.signer_id),
        _u8(tx.public_key.key_type),
        tx.public_key.data,
        _u64(tx.nonce),
        _string(tx.receiver_id),
        tx.block_hash,
        _u32(len(tx.actions)),
    ]
    parts.extend(_action(action) for action in tx.actions)
    return b"".join(parts)


def transaction_hash(tx: "UnsignedTransaction") -> bytes:
    return hashlib.sha256(serialize_transaction(tx)).digest()


def serialize_signed_transaction(signed: "SignedTransaction") -> bytes:
    return (
        serialize_transaction(signed.transaction)
        + _u8(signed.signature.key_type)
        + signed.signature.data
    )
