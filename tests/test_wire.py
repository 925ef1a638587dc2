import hashlib
import struct

import pytest

from neartx.keys import PublicKey, Signature
from neartx.transaction import FunctionCallAction, SignedTransaction, UnsignedTransaction
from neartx.wire import (
    FUNCTION_CALL_ACTION_INDEX,
    WireEncodingError,
    serialize_signed_transaction,
    serialize_transaction,
    transaction_hash,
)


def _tx(**changes) -> UnsignedTransaction:
    values = dict(
        signer_id="alice.test",
        receiver_id="bob.test",
        public_key=PublicKey(bytes([9]) * 32),
        nonce=5,
        block_hash=bytes([3]) * 32,
        actions=(FunctionCallAction("go", b"{}", 7, 1),),
    )
    values.update(changes)
    return UnsignedTransaction(**values)


def test_serialize_transaction_layout():
    expected = b"".join(
        [
            struct.pack("<I", 10) + b"alice.test",
            b"\x00" + bytes([9]) * 32,
            struct.pack("<Q", 5),
            struct.pack("<I", 8) + b"bob.test",
            bytes([3]) * 32,
            struct.pack("<I", 1),
            bytes([FUNCTION_CALL_ACTION_INDEX]),
            struct.pack("<I", 2) + b"go",
            struct.pack("<I", 2) + b"{}",
            struct.pack("<Q", 7),
            (1).to_bytes(16, "little"),
        ]
    )

    assert serialize_transaction(_tx()) == expected
    assert transaction_hash(_tx()) == hashlib.sha256(expected).digest()


def test_signed_transaction_appends_signature():
    tx = _tx()
    signature = Signature(bytes([4]) * 64)

    encoded = serialize_signed_transaction(SignedTransaction(tx, signature))

    assert encoded == serialize_transaction(tx) + b"\x00" + bytes([4]) * 64


def test_deposit_must_fit_u128():
    tx = _tx(actions=(FunctionCallAction("go", b"", 1, 2**128),))
    with pytest.raises(WireEncodingError):
        serialize_transaction(tx)


def test_block_hash_must_be_32_bytes():
    with pytest.raises(WireEncodingError):
        serialize_transaction(_tx(block_hash=b"short"))
