"""Command line interface for neartx.

``neartx call ...`` walks the command tree described in
:mod:`neartx.commands`. Any value missing from the arguments is prompted for,
unless prompts are disabled, and the fully resolved command is echoed back
so it can be replayed without prompts.
"""

from __future__ import annotations

import argparse
import base64
import binascii
import json
import logging
import shlex
import sys
from typing import Any, Dict, Optional, Sequence

from .commands import Call, parse_command
from .config import ConfigurationError, ConnectionConfig, CLIConfig, NETWORK_NAMES, load_cli_config
from .keychain import KeyFileMalformed, KeyFileNotFound, NoFullAccessKeyInKeychain
from .keys import KeyFormatError, PublicKey
from .prompts import FieldResolutionFailed, Prompter
from .resolve import CLIError, ResolutionScope
from .rpc_client import AccountNotFound, NearRPCClient, NetworkRequestFailed, RPCError, format_rpc_hint
from .signing import OfflineFieldMissing, PipelineResult, PipelineState, SaveFailed
from .transaction import GasLimitExceeded
from .units import UnitParseError
from .wire import WireEncodingError

logger = logging.getLogger(__name__)

PROG = "neartx"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG, description="Construct, sign and send NEAR function-call transactions"
    )
    parser.add_argument("--config", default=None, help="Path to a YAML config file (default: ~/.neartx.yaml)")
    parser.add_argument(
        "--keychain-dir",
        default=None,
        help="Keychain root directory (default: ~/.near-credentials)",
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Fail instead of prompting for missing values",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    call_parser = subparsers.add_parser(
        "call",
        help="call a contract method (missing values are prompted for)",
        description=(
            "call network <mainnet|testnet|custom --url URL> | offline "
            "contract <ID> call-function [--prepaid-gas GAS] [--attached-deposit AMOUNT] "
            "<METHOD> <ARGS> signer <ID> <sign-with-keychain|sign-with-private-key> "
            "[--nonce N] [--block-hash HASH] <send|send-async|display|save [--file PATH]>"
        ),
    )
    call_parser.add_argument("tree", nargs=argparse.REMAINDER, help="Command tree arguments")

    nonce_parser = subparsers.add_parser(
        "view-nonce", help="print the current nonce of an access key"
    )
    nonce_parser.add_argument("--network", choices=NETWORK_NAMES, required=True)
    nonce_parser.add_argument("--url", default=None, help="RPC endpoint for --network custom")
    nonce_parser.add_argument("--account", required=True, help="Account ID owning the key")
    nonce_parser.add_argument("--public-key", required=True, help="Access key, e.g. ed25519:...")
    return parser


def _rpc_factory(config: CLIConfig):
    def factory(connection: ConnectionConfig) -> NearRPCClient:
        return NearRPCClient.for_connection(connection, timeout=config.rpc_timeout)

    return factory


def _decode_success_value(value: str) -> str:
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return value
    if not raw:
        return "(empty)"
    try:
        return json.dumps(json.loads(raw), indent=2)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def print_transaction_status(
    outcome: Dict[str, Any], tx_hash: str, connection: Optional[ConnectionConfig]
) -> None:
    status = outcome.get("status") or {}
    if isinstance(status, dict) and "SuccessValue" in status:
        print("--- Success ---")
        print(f"Function execution return value: {_decode_success_value(status['SuccessValue'])}")
    elif isinstance(status, dict) and "Failure" in status:
        print("--- Failure ---")
        print(json.dumps(status["Failure"], indent=2))
    else:
        print(f"Transaction status: {json.dumps(status)}")
    print(f"Transaction ID: {tx_hash}")
    explorer = connection.explorer_url() if connection is not None else None
    if explorer:
        print("To see the transaction in the transaction explorer, please open this url in your browser:")
        print(f"{explorer}/transactions/{tx_hash}")


def print_result(result: PipelineResult, connection: Optional[ConnectionConfig]) -> None:
    if result.state is PipelineState.SUBMITTED:
        if result.outcome is not None:
            print_transaction_status(result.outcome, result.transaction_hash, connection)
        else:
            print(f"Transaction sent. Transaction ID: {result.transaction_hash}")
        return
    if result.saved_path is not None:
        print(f"Signed transaction saved to {result.saved_path}")
        return
    label = "Signed transaction (not sent)" if result.state is PipelineState.DRY_RUN else "Signed transaction"
    print(f"{label}:")
    print(json.dumps(result.document(), indent=2))


def cmd_call(args: argparse.Namespace, config: CLIConfig) -> None:
    prompter = Prompter(interactive=config.interactive)
    scope = ResolutionScope(prompter=prompter, config=config, rpc_factory=_rpc_factory(config))
    call = Call.resolve(parse_command(args.tree), scope)
    print()
    print("Your console command:")
    print(shlex.join([PROG, "call", *call.to_cli_args()]))
    result = call.process(scope)
    print_result(result, call.connection)


def cmd_view_nonce(args: argparse.Namespace, config: CLIConfig) -> None:
    connection = config.connection_for(args.network, args.url)
    rpc = NearRPCClient.for_connection(connection, timeout=config.rpc_timeout)
    public_key = PublicKey.parse(args.public_key)
    if not rpc.account_exists(args.account):
        raise AccountNotFound(args.account)
    access_key = rpc.view_access_key(args.account, str(public_key))
    print(f"current nonce: {access_key['nonce']} for a public key: {public_key}")


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        config = load_cli_config(
            config_path=args.config,
            overrides={
                "keychain_root": args.keychain_dir,
                "interactive": False if args.non_interactive else None,
            },
        )
        if args.command == "call":
            cmd_call(args, config)
        elif args.command == "view-nonce":
            cmd_view_nonce(args, config)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        FieldResolutionFailed,
        GasLimitExceeded,
        KeyFileNotFound,
        KeyFileMalformed,
        NoFullAccessKeyInKeychain,
        OfflineFieldMissing,
        SaveFailed,
        AccountNotFound,
        NetworkRequestFailed,
        KeyFormatError,
        UnitParseError,
        WireEncodingError,
        RuntimeError,
    ) as exc:
        message = str(exc)
        hint = format_rpc_hint(exc) if isinstance(exc, RPCError) else None
        if hint:
            message += f"\nHint: {hint}"
        parser.exit(1, f"error: {message}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
