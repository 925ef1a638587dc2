"""JSON-RPC client for NEAR protocol nodes.

The client is a thin mapping onto the node's RPC surface: it forwards typed
requests, returns the parsed ``result`` payloads and surfaces failures as
``NetworkRequestFailed`` subclasses naming the operation that failed. No
protocol logic lives here; callers decide what a response means.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

import requests
from requests import RequestException, Response

from .config import DEFAULT_RPC_TIMEOUT, ConnectionConfig

logger = logging.getLogger(__name__)

FINAL = "final"


class NetworkRequestFailed(RuntimeError):
    """Raised when a network operation could not be completed."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class RPCTransportError(NetworkRequestFailed):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, operation: str, message: str, status_code: int | None = None) -> None:
        super().__init__(operation, message)
        self.status_code = status_code


class RPCError(NetworkRequestFailed):
    """Raised when the node responds with a JSON-RPC error."""

    def __init__(
        self,
        operation: str,
        code: int,
        message: str,
        cause: str | None = None,
        data: Any = None,
    ) -> None:
        detail = f"RPC error {code}: {message}"
        if cause:
            detail += f" ({cause})"
        super().__init__(operation, detail)
        self.code = code
        self.message = message
        self.cause = cause
        self.data = data


class AccountNotFound(RuntimeError):
    """Raised when an account does not exist on the selected network."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"Account <{account_id}> doesn't exist")
        self.account_id = account_id


def format_rpc_hint(error: RPCError | dict[str, Any] | None) -> str | None:
    """Return a human-friendly hint for common NEAR RPC errors."""

    if error is None:
        return None

    cause = ""
    text = ""
    if isinstance(error, RPCError):
        cause = error.cause or ""
        text = f"{error.message} {error.data or ''}"
    elif isinstance(error, dict):
        cause_obj = error.get("cause") or {}
        cause = cause_obj.get("name", "") if isinstance(cause_obj, dict) else str(cause_obj)
        text = f"{error.get('message', '')} {error.get('data', '')}"

    if cause == "UNKNOWN_ACCOUNT" or "does not exist" in text:
        return "The account does not exist on this network. Check the account id and the selected network."
    if cause == "UNKNOWN_ACCESS_KEY":
        return "The public key is not an access key of this account. Log in again or pick another key."
    if "InvalidNonce" in text:
        return "The nonce is stale. Omit --nonce so it is fetched from the network, or use a higher value."
    if "Expired" in text:
        return "The reference block hash is too old. Omit --block-hash or supply a recent final block hash."
    if "NotEnoughBalance" in text or "LackBalanceForState" in text:
        return "The signer cannot cover the attached deposit and gas. Fund the account or lower --attached-deposit."
    if cause == "TIMEOUT_ERROR":
        return "The node timed out waiting for the outcome. Check the transaction status later by its hash."
    return None


class NearRPCClient:
    """Typed JSON-RPC client for NEAR nodes.

    Each helper maps to one RPC method and returns the parsed ``result``.
    Read helpers query at ``final`` finality.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_RPC_TIMEOUT) -> None:
        self.url = url
        self.timeout = timeout
        self._session = requests.Session()

    @classmethod
    def for_connection(
        cls, connection: ConnectionConfig, timeout: float = DEFAULT_RPC_TIMEOUT
    ) -> "NearRPCClient":
        return cls(connection.rpc_url(), timeout=timeout)

    def call(self, method: str, params: Any = None, *, operation: str | None = None) -> Any:
        """Perform a JSON-RPC request."""

        operation = operation or method
        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params if params is not None else [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self.url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                operation,
                f"RPC connection to {self.url} failed. Ensure the endpoint is reachable or pick another network.",
            ) from exc
        try:
            self._raise_for_status(response)
        except requests.HTTPError as exc:
            raise RPCTransportError(
                operation,
                f"RPC server returned HTTP {response.status_code}; check the --url or configured endpoint.",
                status_code=response.status_code,
            ) from exc
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError(operation, "RPC server returned malformed JSON") from exc
        if result.get("error"):
            error = result["error"]
            cause = error.get("cause")
            raise RPCError(
                operation,
                error.get("code", -1),
                error.get("message", "unknown"),
                cause=cause.get("name") if isinstance(cause, dict) else None,
                data=error.get("data"),
            )
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        # Query errors arrive as HTTP 200 with an "error" member; anything
        # else non-2xx is a transport problem.
        if not response.ok:
            logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
            logger.debug("RPC error body: %s", response.text)
        response.raise_for_status()

    def query(self, request_type: str, operation: str, **fields: Any) -> Dict[str, Any]:
        params = {"request_type": request_type, "finality": FINAL, **fields}
        result = self.call("query", params, operation=operation)
        # Older nodes report query failures inside the result payload.
        if isinstance(result, dict) and isinstance(result.get("error"), str):
            raise RPCError(operation, -32000, result["error"])
        return result

    # Convenience wrappers -------------------------------------------------

    def view_account(self, account_id: str) -> Dict[str, Any]:
        try:
            return self.query("view_account", "view account", account_id=account_id)
        except RPCError as exc:
            if exc.cause == "UNKNOWN_ACCOUNT" or "does not exist" in exc.message:
                raise AccountNotFound(account_id) from exc
            raise

    def account_exists(self, account_id: str) -> bool:
        try:
            self.view_account(account_id)
        except AccountNotFound:
            return False
        return True

    def view_access_key_list(self, account_id: str) -> list[Dict[str, Any]]:
        result = self.query(
            "view_access_key_list", "view access key list", account_id=account_id
        )
        keys = result.get("keys") if isinstance(result, dict) else None
        if not isinstance(keys, list):
            raise RPCTransportError("view access key list", "unexpected response shape")
        return keys

    def view_access_key(self, account_id: str, public_key: str) -> Dict[str, Any]:
        return self.query(
            "view_access_key",
            "view access key",
            account_id=account_id,
            public_key=public_key,
        )

    def block(self, finality: str = FINAL) -> Dict[str, Any]:
        return self.call("block", {"finality": finality}, operation="view final block")

    def latest_final_block_hash(self) -> str:
        header = self.block().get("header") or {}
        block_hash = header.get("hash")
        if not block_hash:
            raise RPCTransportError("view final block", "block response has no header hash")
        return block_hash

    def broadcast_tx_async(self, signed_tx_base64: str) -> str:
        return self.call("broadcast_tx_async", [signed_tx_base64], operation="send transaction")

    def broadcast_tx_commit(self, signed_tx_base64: str) -> Dict[str, Any]:
        return self.call("broadcast_tx_commit", [signed_tx_base64], operation="send transaction")

    def tx_status(self, tx_hash: str, sender_id: str) -> Dict[str, Any]:
        return self.call("tx", [tx_hash, sender_id], operation="transaction status")


def is_full_access(access_key_view: Dict[str, Any]) -> bool:
    """Return True when an access key view carries the FullAccess permission."""

    permission = (access_key_view.get("access_key") or access_key_view).get("permission")
    return permission == "FullAccess"


def account_exists(rpc: Optional[NearRPCClient], account_id: str) -> bool:
    """Offline postures cannot check existence and accept any account id."""

    if rpc is None:
        return True
    return rpc.account_exists(account_id)
