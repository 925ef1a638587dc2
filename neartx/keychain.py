"""Locate signing keys in the local keychain or from explicit key material.

Keychain layout under the root directory (``~/.near-credentials`` by
default)::

    default/<account-id>.json                offline and custom networks
    <network>/<account-id>.json              one key for the account
    <network>/<account-id>/<key-file>.json   one file per locally held key

Each file is a JSON object with ``account_id``, ``public_key`` and
``private_key``. Nothing in this module writes to the keychain.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

from .config import OFFLINE_KEY_DIR_NAME, ConnectionConfig
from .keys import KeyFormatError, PublicKey, SecretKey
from .rpc_client import NearRPCClient, is_full_access

logger = logging.getLogger(__name__)


class KeyFileNotFound(RuntimeError):
    """Raised when the expected key file does not exist."""

    def __init__(self, path: Path, detail: str | None = None) -> None:
        message = f"Access key file not found: {path}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.path = path


class KeyFileMalformed(RuntimeError):
    """Raised when a key file exists but does not hold a usable key record."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Malformed key record in {path}: {reason}")
        self.path = path
        self.reason = reason


class NoFullAccessKeyInKeychain(RuntimeError):
    """Raised when no local key matches a full-access key of the account."""

    def __init__(self, account_id: str, directory: Path, message: str) -> None:
        super().__init__(f"{message} (account: {account_id}, keychain: {directory})")
        self.account_id = account_id
        self.directory = directory


@dataclass(frozen=True)
class KeyPair:
    public_key: PublicKey
    private_key: SecretKey


@dataclass(frozen=True)
class KeychainEntry:
    account_id: str
    public_key: PublicKey
    private_key: SecretKey
    path: Path

    def key_pair(self) -> KeyPair:
        return KeyPair(self.public_key, self.private_key)


def _required_string(record: dict[str, Any], name: str, path: Path) -> str:
    value = record.get(name)
    if not isinstance(value, str) or not value:
        raise KeyFileMalformed(path, f"missing or non-string field {name!r}")
    return value


def load_keychain_entry(path: Path, account_id: str | None = None) -> KeychainEntry:
    """Read and validate one key record.

    The private key must derive the stored public key, and when *account_id*
    is given the record must claim that account.
    """

    try:
        raw = path.read_text()
    except FileNotFoundError:
        raise KeyFileNotFound(path) from None
    except OSError as exc:
        raise KeyFileNotFound(path, str(exc)) from exc

    try:
        record = json.loads(raw)
    except ValueError as exc:
        raise KeyFileMalformed(path, f"invalid JSON: {exc}") from exc
    if not isinstance(record, dict):
        raise KeyFileMalformed(path, "expected a JSON object")

    claimed_account = _required_string(record, "account_id", path)
    try:
        public_key = PublicKey.parse(_required_string(record, "public_key", path))
        private_key = SecretKey.parse(_required_string(record, "private_key", path))
    except KeyFormatError as exc:
        raise KeyFileMalformed(path, str(exc)) from exc

    if private_key.public_key() != public_key:
        raise KeyFileMalformed(path, "private_key does not belong to public_key")
    if account_id is not None and claimed_account != account_id:
        raise KeyFileMalformed(
            path, f"record belongs to {claimed_account!r}, expected {account_id!r}"
        )
    return KeychainEntry(claimed_account, public_key, private_key, path)


class KeySource(Protocol):
    def resolve(
        self,
        account_id: str,
        connection: Optional[ConnectionConfig],
        rpc: Optional[NearRPCClient],
    ) -> KeyPair:
        ...


class KeychainKeySource:
    """Resolve keys from the on-disk keychain, asking the network when needed."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def offline_key_path(self, account_id: str) -> Path:
        return self.root / OFFLINE_KEY_DIR_NAME / f"{account_id}.json"

    def network_dir(self, connection: ConnectionConfig) -> Path:
        return self.root / connection.key_storage_dir_name()

    def resolve(
        self,
        account_id: str,
        connection: Optional[ConnectionConfig],
        rpc: Optional[NearRPCClient],
    ) -> KeyPair:
        return self.resolve_entry(account_id, connection, rpc).key_pair()

    def resolve_entry(
        self,
        account_id: str,
        connection: Optional[ConnectionConfig],
        rpc: Optional[NearRPCClient],
    ) -> KeychainEntry:
        if connection is None:
            return load_keychain_entry(self.offline_key_path(account_id), account_id)

        direct_path = self.network_dir(connection) / f"{account_id}.json"
        if direct_path.exists():
            logger.debug("Using key file %s", direct_path)
            return load_keychain_entry(direct_path, account_id)

        if rpc is None:
            raise ValueError("an RPC client is required to search the keychain online")
        return self._match_full_access_key(account_id, connection, rpc)

    def _match_full_access_key(
        self, account_id: str, connection: ConnectionConfig, rpc: NearRPCClient
    ) -> KeychainEntry:
        account_dir = self.network_dir(connection) / account_id
        access_keys = rpc.view_access_key_list(account_id)
        full_access_keys = [
            item["public_key"]
            for item in access_keys
            if is_full_access(item) and isinstance(item.get("public_key"), str)
        ]
        logger.debug(
            "Account %s has %d access keys, %d with full access",
            account_id,
            len(access_keys),
            len(full_access_keys),
        )

        try:
            # Directory order is platform dependent; sort for a stable tie-break.
            candidates = sorted(path for path in account_dir.iterdir() if path.is_file())
        except OSError as exc:
            raise NoFullAccessKeyInKeychain(
                account_id,
                account_dir,
                "There are no access keys found in the keychain for the signer account. "
                f"Log in before signing transactions with keychain ({exc.strerror or exc})",
            ) from exc

        for public_key in full_access_keys:
            fingerprint = public_key.rsplit(":", 1)[-1]
            for candidate in candidates:
                if fingerprint not in candidate.stem:
                    continue
                entry = load_keychain_entry(candidate, account_id)
                if str(entry.public_key) != public_key:
                    raise KeyFileMalformed(
                        candidate, f"file name refers to {public_key} but holds {entry.public_key}"
                    )
                logger.info("Selected full-access key %s for %s", public_key, account_id)
                return entry

        raise NoFullAccessKeyInKeychain(
            account_id,
            account_dir,
            "No usable access key found in keychain: none of the "
            f"{len(full_access_keys)} full-access keys of the account is stored locally",
        )


@dataclass(frozen=True)
class ExplicitKeySource:
    """Key material supplied directly by the operator."""

    public_key: PublicKey
    private_key: SecretKey

    def resolve(
        self,
        account_id: str,
        connection: Optional[ConnectionConfig],
        rpc: Optional[NearRPCClient],
    ) -> KeyPair:
        return KeyPair(self.public_key, self.private_key)
