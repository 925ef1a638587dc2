"""Transaction assembly for NEAR function calls.

The assembler never mutates a transaction: every helper returns a new
``UnsignedTransaction`` with exactly one field group replaced, so values
written by an outer command level cannot be changed by an inner one.
"""

from __future__ import annotations

import base64
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, Union

import base58

from .keys import PublicKey, Signature
from .units import ONE_TERAGAS, NearGas
from . import wire

logger = logging.getLogger(__name__)

MAX_GAS = 300 * ONE_TERAGAS
MAX_DEPOSIT = 2**128 - 1
PLACEHOLDER_NONCE = 0
PLACEHOLDER_BLOCK_HASH = bytes(32)
PLACEHOLDER_PUBLIC_KEY = PublicKey(bytes(32))

_ACCOUNT_ID_RE = re.compile(r"^(([a-z\d]+[\-_])*[a-z\d]+\.)*([a-z\d]+[\-_])*[a-z\d]+$")


def account_id_problem(account_id: str) -> Optional[str]:
    """Return why *account_id* is not a valid account id, or None."""

    if not 2 <= len(account_id) <= 64:
        return f"Account id <{account_id}> must be between 2 and 64 characters"
    if not _ACCOUNT_ID_RE.match(account_id):
        return (
            f"Account id <{account_id}> may only contain lowercase letters, digits "
            "and single '-', '_' or '.' separators"
        )
    return None


class GasLimitExceeded(ValueError):
    """Raised when a function call requests more gas than a transaction may burn."""

    def __init__(self, gas: int, field_name: str = "prepaid_gas") -> None:
        super().__init__(
            f"{field_name}: requested {NearGas(gas)} exceeds the maximum of {NearGas(MAX_GAS)}"
        )
        self.gas = gas
        self.field_name = field_name


def check_gas(gas: int, field_name: str = "prepaid_gas") -> int:
    if gas > MAX_GAS:
        raise GasLimitExceeded(gas, field_name)
    if gas < 0:
        raise ValueError(f"{field_name}: gas cannot be negative")
    return gas


def deposit_problem(deposit: int) -> Optional[str]:
    """Return why *deposit* cannot be attached to an action, or None."""

    if not 0 <= deposit <= MAX_DEPOSIT:
        return f"The deposit must fit in an unsigned 128-bit integer ({MAX_DEPOSIT} yoctoNEAR at most)"
    return None


@dataclass(frozen=True)
class FunctionCallAction:
    method_name: str
    args: bytes
    gas: int
    deposit: int

    def describe(self) -> str:
        return f"call {self.method_name}() gas={NearGas(self.gas)} deposit={self.deposit} yoctoNEAR"


Action = Union[FunctionCallAction]


def decode_block_hash(raw: str) -> bytes:
    try:
        data = base58.b58decode(raw.strip())
    except ValueError as exc:
        raise ValueError(f"block_hash is not valid base58: {raw!r}") from exc
    if len(data) != 32:
        raise ValueError(f"block_hash must decode to 32 bytes, got {len(data)}: {raw!r}")
    return data


def encode_block_hash(data: bytes) -> str:
    return base58.b58encode(data).decode("ascii")


@dataclass(frozen=True)
class UnsignedTransaction:
    signer_id: str
    receiver_id: str
    public_key: PublicKey
    nonce: int
    block_hash: bytes
    actions: Tuple[Action, ...] = field(default_factory=tuple)

    @classmethod
    def prepopulated(cls, receiver_id: str) -> "UnsignedTransaction":
        """Return a transaction with only the receiver known."""

        return cls(
            signer_id="",
            receiver_id=receiver_id,
            public_key=PLACEHOLDER_PUBLIC_KEY,
            nonce=PLACEHOLDER_NONCE,
            block_hash=PLACEHOLDER_BLOCK_HASH,
        )

    def serialize(self) -> bytes:
        return wire.serialize_transaction(self)

    def hash(self) -> bytes:
        return wire.transaction_hash(self)


def append_action(tx: UnsignedTransaction, action: Action) -> UnsignedTransaction:
    """Return *tx* with *action* appended."""

    if isinstance(action, FunctionCallAction):
        check_gas(action.gas)
    logger.debug("Appending action to transaction for %s", tx.receiver_id)
    return replace(tx, actions=tx.actions + (action,))


def set_identity(tx: UnsignedTransaction, signer_id: str, public_key: PublicKey) -> UnsignedTransaction:
    return replace(tx, signer_id=signer_id, public_key=public_key)


def set_reference(tx: UnsignedTransaction, nonce: int, block_hash: bytes) -> UnsignedTransaction:
    if nonce < 0 or nonce >= 2**64:
        raise ValueError("nonce must fit in an unsigned 64-bit integer")
    return replace(tx, nonce=nonce, block_hash=block_hash)


@dataclass(frozen=True)
class SignedTransaction:
    transaction: UnsignedTransaction
    signature: Signature

    def serialize(self) -> bytes:
        return wire.serialize_signed_transaction(self)

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")

    @property
    def hash(self) -> str:
        return encode_block_hash(self.transaction.hash())
