"""Sign assembled transactions and dispatch them.

The pipeline is a short linear state machine::

    ASSEMBLING -> KEY_RESOLVED -> SIGNED -> SUBMITTED | SAVED | DRY_RUN

Online postures fill a missing nonce and reference block hash from the
network. Offline postures require both up front and never touch the RPC
client. The pipeline does not print anything; it returns a
``PipelineResult`` for the caller to report.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ConnectionConfig
from .keychain import KeyPair, KeySource
from .rpc_client import NearRPCClient
from .transaction import (
    SignedTransaction,
    UnsignedTransaction,
    decode_block_hash,
    encode_block_hash,
    set_identity,
    set_reference,
)

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    ASSEMBLING = "assembling"
    KEY_RESOLVED = "key-resolved"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    SAVED = "saved"
    DRY_RUN = "dry-run"


class SubmitMode(str, Enum):
    SEND = "send"
    SEND_ASYNC = "send-async"
    DISPLAY = "display"
    SAVE = "save"

    @property
    def submits(self) -> bool:
        return self in {SubmitMode.SEND, SubmitMode.SEND_ASYNC}


class OfflineFieldMissing(RuntimeError):
    """Raised when offline signing lacks a value only the network could supply."""

    def __init__(self, field: str) -> None:
        super().__init__(
            f"{field} is required in offline mode; pass --{field.replace('_', '-')} explicitly"
        )
        self.field = field


class SaveFailed(RuntimeError):
    """Raised when a signed transaction cannot be written to its file."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Could not save the signed transaction to {path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass
class PipelineResult:
    state: PipelineState
    signed: SignedTransaction
    transaction_hash: str
    outcome: Optional[Dict[str, Any]] = None
    saved_path: Optional[Path] = None

    @property
    def serialized(self) -> str:
        return self.signed.to_base64()

    def document(self) -> Dict[str, Any]:
        """JSON-ready description of the signed transaction for later relay."""

        tx = self.signed.transaction
        return {
            "signed_transaction": self.serialized,
            "hash": self.transaction_hash,
            "signer_id": tx.signer_id,
            "receiver_id": tx.receiver_id,
            "public_key": str(tx.public_key),
            "nonce": tx.nonce,
            "block_hash": encode_block_hash(tx.block_hash),
        }


@dataclass
class SigningPipeline:
    key_source: KeySource
    connection: Optional[ConnectionConfig]
    rpc: Optional[NearRPCClient]
    submit_mode: SubmitMode
    nonce: Optional[int] = None
    block_hash: Optional[str] = None
    save_path: Optional[Path] = None
    state: PipelineState = PipelineState.ASSEMBLING
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.ASSEMBLING])

    @property
    def online(self) -> bool:
        return self.connection is not None

    def _advance(self, state: PipelineState) -> None:
        logger.debug("Signing pipeline %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _require_rpc(self) -> NearRPCClient:
        if self.rpc is None:
            raise ValueError("online signing requires an RPC client")
        return self.rpc

    def run(self, unsigned: UnsignedTransaction) -> PipelineResult:
        key_pair = self.key_source.resolve(unsigned.signer_id, self.connection, self.rpc)
        self._advance(PipelineState.KEY_RESOLVED)
        signed = self.sign(unsigned, key_pair)
        self._advance(PipelineState.SIGNED)
        return self.dispatch(signed)

    def _reference(self, tx: UnsignedTransaction) -> tuple[int, bytes]:
        nonce = self.nonce
        block_hash = self.block_hash
        if not self.online:
            if nonce is None:
                raise OfflineFieldMissing("nonce")
            if block_hash is None:
                raise OfflineFieldMissing("block_hash")
            return nonce, decode_block_hash(block_hash)

        if nonce is None:
            access_key = self._require_rpc().view_access_key(tx.signer_id, str(tx.public_key))
            nonce = int(access_key["nonce"]) + 1
            logger.debug("Fetched nonce %d for %s", nonce, tx.signer_id)
        if block_hash is None:
            block_hash = self._require_rpc().latest_final_block_hash()
            logger.debug("Using final block %s as reference", block_hash)
        return nonce, decode_block_hash(block_hash)

    def sign(self, unsigned: UnsignedTransaction, key_pair: KeyPair) -> SignedTransaction:
        tx = set_identity(unsigned, unsigned.signer_id, key_pair.public_key)
        nonce, block_hash = self._reference(tx)
        tx = set_reference(tx, nonce, block_hash)
        signature = key_pair.private_key.sign(tx.hash())
        signed = SignedTransaction(tx, signature)
        logger.info("Transaction signed by %s (hash %s)", tx.signer_id, signed.hash)
        return signed

    def dispatch(self, signed: SignedTransaction) -> PipelineResult:
        if self.submit_mode is SubmitMode.DISPLAY:
            self._advance(PipelineState.DRY_RUN)
            return PipelineResult(PipelineState.DRY_RUN, signed, signed.hash)

        if not self.online or self.submit_mode is SubmitMode.SAVE:
            if self.submit_mode.submits:
                logger.warning("Offline mode: the signed transaction is saved instead of sent")
            result = PipelineResult(PipelineState.SAVED, signed, signed.hash)
            if self.save_path is not None:
                try:
                    self.save_path.write_text(json.dumps(result.document(), indent=2) + "\n")
                except OSError as exc:
                    raise SaveFailed(self.save_path, exc.strerror or str(exc)) from exc
                result.saved_path = self.save_path
                logger.info("Signed transaction written to %s", self.save_path)
            self._advance(PipelineState.SAVED)
            return result

        rpc = self._require_rpc()
        if self.submit_mode is SubmitMode.SEND_ASYNC:
            tx_hash = rpc.broadcast_tx_async(signed.to_base64())
            outcome = None
        else:
            outcome = rpc.broadcast_tx_commit(signed.to_base64())
            tx_hash = ((outcome or {}).get("transaction") or {}).get("hash") or signed.hash
        logger.info("Broadcasted transaction %s", tx_hash)
        self._advance(PipelineState.SUBMITTED)
        return PipelineResult(PipelineState.SUBMITTED, signed, tx_hash, outcome=outcome)
