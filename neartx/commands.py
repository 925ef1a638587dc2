"""Command tree for constructing, signing and sending a function call.

The tree is fixed::

    call
      network (mainnet | testnet | custom --url URL) | offline
        contract <receiver-account-id>
          call-function [--prepaid-gas GAS] [--attached-deposit AMOUNT] <method> <args>
            signer <signer-account-id>
              sign-with-keychain [--nonce N] [--block-hash HASH]
              | sign-with-private-key [--signer-public-key KEY] [--signer-private-key KEY]
                                      [--nonce N] [--block-hash HASH]
                send | send-async | display | save [--file PATH]

Levels are declared leaves first so each level's subcommand table can refer
to the variants below it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, Tuple, Union

from .config import ConfigurationError, ConnectionConfig, validate_rpc_url
from .keychain import ExplicitKeySource, KeychainKeySource, KeySource, load_keychain_entry
from .keys import PublicKey, SecretKey
from .prompts import FieldResolutionFailed
from .resolve import (
    CliNode,
    ResolutionScope,
    ResolvableNode,
    Variant,
    VariantLevel,
    flag,
    positional,
    resolve_account_id,
    subcommand,
)
from .signing import PipelineResult, SigningPipeline, SubmitMode
from .transaction import (
    MAX_GAS,
    FunctionCallAction,
    UnsignedTransaction,
    append_action,
    check_gas,
    decode_block_hash,
    deposit_problem,
    set_identity,
)
from .units import NearBalance, NearGas

logger = logging.getLogger(__name__)

DEFAULT_GAS_HINT = "100 TeraGas"
DEFAULT_DEPOSIT_HINT = "0 NEAR"
DEFAULT_ARGS_HINT = "{}"


def parse_nonce(raw: str) -> int:
    value = int(raw)
    if not 0 <= value < 2**64:
        raise ValueError("nonce must be an unsigned 64-bit integer")
    return value


def parse_block_hash(raw: str) -> str:
    decode_block_hash(raw)
    return raw.strip()


def parse_rpc_url(raw: str) -> str:
    try:
        return validate_rpc_url(raw)
    except ConfigurationError as exc:
        raise ValueError(str(exc)) from exc


def _resolve_offline_reference(
    nonce: Optional[int],
    block_hash: Optional[str],
    scope: ResolutionScope,
    public_key: PublicKey,
) -> Tuple[int, str]:
    if nonce is None:
        nonce = scope.prompter.ask(
            "nonce",
            f"Enter transaction nonce for this public key ({public_key}); "
            "use the current access key nonce + 1",
            parse_nonce,
        )
    if block_hash is None:
        block_hash = scope.prompter.ask("block_hash", "Enter recent block hash", parse_block_hash)
    return nonce, block_hash


# Submit ----------------------------------------------------------------------


@dataclass
class CliSend(CliNode):
    COMMAND = "send"


@dataclass
class CliSendAsync(CliNode):
    COMMAND = "send-async"


@dataclass
class CliDisplay(CliNode):
    COMMAND = "display"


@dataclass
class CliSave(CliNode):
    COMMAND = "save"

    file: Optional[Path] = flag("--file", Path)


_SUBMIT_CLI = {
    SubmitMode.SEND: CliSend,
    SubmitMode.SEND_ASYNC: CliSendAsync,
    SubmitMode.DISPLAY: CliDisplay,
    SubmitMode.SAVE: CliSave,
}


@dataclass(frozen=True)
class Submit(ResolvableNode[CliNode]):
    mode: SubmitMode
    file: Optional[Path] = None

    @classmethod
    def resolve(cls, cli: CliNode, scope: ResolutionScope, **_: Any) -> "Submit":
        mode = next(mode for mode, cli_type in _SUBMIT_CLI.items() if type(cli) is cli_type)
        return cls(mode, getattr(cli, "file", None))

    def to_cli(self) -> CliNode:
        if self.mode is SubmitMode.SAVE:
            return CliSave(file=self.file)
        return _SUBMIT_CLI[self.mode]()

    def pipeline(
        self,
        key_source: KeySource,
        scope: ResolutionScope,
        nonce: Optional[int],
        block_hash: Optional[str],
    ) -> SigningPipeline:
        return SigningPipeline(
            key_source=key_source,
            connection=scope.connection,
            rpc=scope.rpc,
            submit_mode=self.mode,
            nonce=nonce,
            block_hash=block_hash,
            save_path=self.file,
        )


SUBMIT_LEVEL = VariantLevel(
    "submit",
    "How would you like to proceed?",
    [
        Variant("send", CliSend, Submit, "send the transaction and wait for its final outcome", online_only=True),
        Variant("send-async", CliSendAsync, Submit, "send the transaction and return its hash", online_only=True),
        Variant("display", CliDisplay, Submit, "print the signed transaction without sending it"),
        Variant("save", CliSave, Submit, "save the signed transaction for later relay"),
    ],
)


# Signing options -------------------------------------------------------------


@dataclass
class CliSignKeychain(CliNode):
    COMMAND = "sign-with-keychain"
    SUBCOMMANDS = SUBMIT_LEVEL.cli_map()

    nonce: Optional[int] = flag("--nonce", parse_nonce)
    block_hash: Optional[str] = flag("--block-hash", parse_block_hash)
    submit: Optional[CliNode] = subcommand()


@dataclass(frozen=True)
class SignKeychain(ResolvableNode[CliSignKeychain]):
    """Sign with a key from the local keychain.

    Online, an unset nonce or block hash stays unset and is fetched while
    signing. Offline, the account's key file must exist and both values are
    collected now.
    """

    submit: Submit
    nonce: Optional[int] = None
    block_hash: Optional[str] = None

    @classmethod
    def resolve(
        cls, cli: CliSignKeychain, scope: ResolutionScope, *, sender_account_id: str, **_: Any
    ) -> "SignKeychain":
        nonce, block_hash = cli.nonce, cli.block_hash
        if not scope.online:
            key_path = KeychainKeySource(scope.keychain_root).offline_key_path(sender_account_id)
            entry = load_keychain_entry(key_path, sender_account_id)
            nonce, block_hash = _resolve_offline_reference(nonce, block_hash, scope, entry.public_key)
        submit = SUBMIT_LEVEL.resolve(cli.submit, scope)
        return cls(submit=submit, nonce=nonce, block_hash=block_hash)

    def to_cli(self) -> CliSignKeychain:
        return CliSignKeychain(nonce=self.nonce, block_hash=self.block_hash, submit=self.submit.to_cli())

    def process(self, unsigned: UnsignedTransaction, scope: ResolutionScope) -> PipelineResult:
        key_source = KeychainKeySource(scope.keychain_root)
        return self.submit.pipeline(key_source, scope, self.nonce, self.block_hash).run(unsigned)


@dataclass
class CliSignPrivateKey(CliNode):
    COMMAND = "sign-with-private-key"
    SUBCOMMANDS = SUBMIT_LEVEL.cli_map()

    signer_public_key: Optional[PublicKey] = flag("--signer-public-key", PublicKey.parse)
    signer_private_key: Optional[SecretKey] = flag("--signer-private-key", SecretKey.parse)
    nonce: Optional[int] = flag("--nonce", parse_nonce)
    block_hash: Optional[str] = flag("--block-hash", parse_block_hash)
    submit: Optional[CliNode] = subcommand()


@dataclass(frozen=True)
class SignPrivateKey(ResolvableNode[CliSignPrivateKey]):
    signer_public_key: PublicKey
    signer_private_key: SecretKey
    submit: Submit
    nonce: Optional[int] = None
    block_hash: Optional[str] = None

    @classmethod
    def resolve(
        cls, cli: CliSignPrivateKey, scope: ResolutionScope, **_: Any
    ) -> "SignPrivateKey":
        public_key = cli.signer_public_key
        if public_key is None:
            public_key = scope.prompter.ask(
                "signer_public_key", "Enter sender (signer) public key", PublicKey.parse
            )

        def mismatch(candidate: SecretKey) -> Optional[str]:
            if candidate.public_key() != public_key:
                return f"The private key does not belong to {public_key}"
            return None

        private_key = cli.signer_private_key
        if private_key is None:
            private_key = scope.prompter.ask(
                "signer_private_key",
                "Enter sender (signer) private (secret) key",
                SecretKey.parse,
                validate=mismatch,
            )
        else:
            problem = mismatch(private_key)
            if problem:
                raise FieldResolutionFailed("signer_private_key", problem)

        nonce, block_hash = cli.nonce, cli.block_hash
        if not scope.online:
            nonce, block_hash = _resolve_offline_reference(nonce, block_hash, scope, public_key)
        submit = SUBMIT_LEVEL.resolve(cli.submit, scope)
        return cls(public_key, private_key, submit, nonce, block_hash)

    def to_cli(self) -> CliSignPrivateKey:
        return CliSignPrivateKey(
            signer_public_key=self.signer_public_key,
            signer_private_key=self.signer_private_key,
            nonce=self.nonce,
            block_hash=self.block_hash,
            submit=self.submit.to_cli(),
        )

    def process(self, unsigned: UnsignedTransaction, scope: ResolutionScope) -> PipelineResult:
        key_source = ExplicitKeySource(self.signer_public_key, self.signer_private_key)
        return self.submit.pipeline(key_source, scope, self.nonce, self.block_hash).run(unsigned)


SIGN_LEVEL = VariantLevel(
    "sign_option",
    "How would you like to sign the transaction?",
    [
        Variant("sign-with-keychain", CliSignKeychain, SignKeychain, "use a key stored in the local keychain"),
        Variant("sign-with-private-key", CliSignPrivateKey, SignPrivateKey, "enter the key pair manually"),
    ],
)

SignOption = Union[SignKeychain, SignPrivateKey]


# Signer ----------------------------------------------------------------------


@dataclass
class CliSender(CliNode):
    COMMAND = "signer"
    SUBCOMMANDS = SIGN_LEVEL.cli_map()

    sender_account_id: Optional[str] = positional()
    sign_option: Optional[CliNode] = subcommand()


@dataclass(frozen=True)
class Sender(ResolvableNode[CliSender]):
    sender_account_id: str
    sign_option: SignOption

    @classmethod
    def resolve(cls, cli: CliSender, scope: ResolutionScope, **_: Any) -> "Sender":
        account_id = resolve_account_id(
            cli.sender_account_id,
            scope,
            field_name="sender_account_id",
            prompt="What is the account ID of the signer?",
        )
        sign_option = SIGN_LEVEL.resolve(cli.sign_option, scope, sender_account_id=account_id)
        return cls(account_id, sign_option)

    def to_cli(self) -> CliSender:
        return CliSender(sender_account_id=self.sender_account_id, sign_option=self.sign_option.to_cli())

    def process(self, unsigned: UnsignedTransaction, scope: ResolutionScope) -> PipelineResult:
        tx = set_identity(unsigned, self.sender_account_id, unsigned.public_key)
        return self.sign_option.process(tx, scope)


SEND_FROM_LEVEL = VariantLevel(
    "send_from", "Specify a signer", [Variant("signer", CliSender, Sender, "specify a signer")]
)


# Function call ---------------------------------------------------------------


@dataclass
class CliCallFunction(CliNode):
    COMMAND = "call-function"
    SUBCOMMANDS = SEND_FROM_LEVEL.cli_map()

    gas: Optional[NearGas] = flag("--prepaid-gas", NearGas.parse)
    deposit: Optional[NearBalance] = flag("--attached-deposit", NearBalance.parse)
    method_name: Optional[str] = positional()
    args: Optional[str] = positional()
    send_from: Optional[CliNode] = subcommand()


def _gas_ceiling_problem(gas: NearGas) -> Optional[str]:
    if gas.inner > MAX_GAS:
        return f"You need to enter a value of no more than {NearGas(MAX_GAS)}"
    return None


@dataclass(frozen=True)
class CallFunction(ResolvableNode[CliCallFunction]):
    method_name: str
    args: bytes
    gas: int
    deposit: int
    send_from: Sender

    @classmethod
    def resolve(cls, cli: CliCallFunction, scope: ResolutionScope, **_: Any) -> "CallFunction":
        prompter = scope.prompter
        method_name = cli.method_name
        if method_name is None:
            method_name = prompter.text("method_name", "Enter a method name")
        args = cli.args
        if args is None:
            args = prompter.text("args", "Enter args for function", default=DEFAULT_ARGS_HINT)

        if cli.gas is not None:
            gas = check_gas(cli.gas.inner)
        else:
            gas = prompter.ask(
                "prepaid_gas",
                "Enter a gas for function",
                NearGas.parse,
                default=DEFAULT_GAS_HINT,
                validate=_gas_ceiling_problem,
            ).inner

        if cli.deposit is not None:
            deposit = cli.deposit.to_yoctonear()
            problem = deposit_problem(deposit)
            if problem:
                raise FieldResolutionFailed("attached_deposit", problem)
        else:
            deposit = prompter.ask(
                "attached_deposit",
                "Enter a deposit for function (example: 10NEAR or 0.5near or 10000yoctonear)",
                NearBalance.parse,
                default=DEFAULT_DEPOSIT_HINT,
                validate=lambda balance: deposit_problem(balance.to_yoctonear()),
            ).to_yoctonear()

        send_from = SEND_FROM_LEVEL.resolve(cli.send_from, scope)
        return cls(method_name, args.encode("utf-8"), gas, deposit, send_from)

    def to_cli(self) -> CliCallFunction:
        return CliCallFunction(
            gas=NearGas(self.gas),
            deposit=NearBalance.from_yoctonear(self.deposit),
            method_name=self.method_name,
            args=self.args.decode("utf-8", errors="replace"),
            send_from=self.send_from.to_cli(),
        )

    def action(self) -> FunctionCallAction:
        return FunctionCallAction(self.method_name, self.args, self.gas, self.deposit)

    def process(self, unsigned: UnsignedTransaction, scope: ResolutionScope) -> PipelineResult:
        tx = append_action(unsigned, self.action())
        return self.send_from.process(tx, scope)


CALL_LEVEL = VariantLevel(
    "action",
    "Choose an action",
    [Variant("call-function", CliCallFunction, CallFunction, "call a method of the contract")],
)


# Receiver --------------------------------------------------------------------


@dataclass
class CliContract(CliNode):
    COMMAND = "contract"
    SUBCOMMANDS = CALL_LEVEL.cli_map()

    contract_account_id: Optional[str] = positional()
    call: Optional[CliNode] = subcommand()


@dataclass(frozen=True)
class Contract(ResolvableNode[CliContract]):
    contract_account_id: str
    call: CallFunction

    @classmethod
    def resolve(cls, cli: CliContract, scope: ResolutionScope, **_: Any) -> "Contract":
        account_id = resolve_account_id(
            cli.contract_account_id,
            scope,
            field_name="contract_account_id",
            prompt="What is the account ID of the contract?",
        )
        return cls(account_id, CALL_LEVEL.resolve(cli.call, scope))

    def to_cli(self) -> CliContract:
        return CliContract(contract_account_id=self.contract_account_id, call=self.call.to_cli())

    def process(self, scope: ResolutionScope) -> PipelineResult:
        unsigned = UnsignedTransaction.prepopulated(self.contract_account_id)
        return self.call.process(unsigned, scope)


CONTRACT_LEVEL = VariantLevel(
    "receiver",
    "Choose the receiver",
    [Variant("contract", CliContract, Contract, "the contract account to call")],
)


# Network selection -----------------------------------------------------------


@dataclass
class CliMainnet(CliNode):
    COMMAND = "mainnet"
    SUBCOMMANDS = CONTRACT_LEVEL.cli_map()

    contract: Optional[CliNode] = subcommand()


@dataclass
class CliTestnet(CliNode):
    COMMAND = "testnet"
    SUBCOMMANDS = CONTRACT_LEVEL.cli_map()

    contract: Optional[CliNode] = subcommand()


@dataclass
class CliCustomServer(CliNode):
    COMMAND = "custom"
    SUBCOMMANDS = CONTRACT_LEVEL.cli_map()

    url: Optional[str] = flag("--url", parse_rpc_url)
    contract: Optional[CliNode] = subcommand()


@dataclass(frozen=True)
class Server(ResolvableNode[CliNode]):
    connection: ConnectionConfig
    contract: Contract

    @classmethod
    def resolve(cls, cli: CliNode, scope: ResolutionScope, **_: Any) -> "Server":
        if isinstance(cli, CliCustomServer):
            url = cli.url
            if url is None:
                url = scope.prompter.ask("url", "What is the RPC endpoint?", parse_rpc_url)
            connection = scope.config.connection_for("custom", url)
        else:
            connection = scope.config.connection_for(cli.COMMAND)
        online_scope = scope.with_connection(connection)
        contract = CONTRACT_LEVEL.resolve(getattr(cli, "contract"), online_scope)
        return cls(connection, contract)

    def to_cli(self) -> CliNode:
        contract = self.contract.to_cli()
        if self.connection.network == "custom":
            return CliCustomServer(url=self.connection.url, contract=contract)
        if self.connection.network == "mainnet":
            return CliMainnet(contract=contract)
        return CliTestnet(contract=contract)

    def process(self, scope: ResolutionScope) -> PipelineResult:
        return self.contract.process(scope.with_connection(self.connection))


SERVER_LEVEL = VariantLevel(
    "network",
    "Select the network",
    [
        Variant("mainnet", CliMainnet, Server, "NEAR mainnet"),
        Variant("testnet", CliTestnet, Server, "NEAR testnet"),
        Variant("custom", CliCustomServer, Server, "a custom RPC endpoint"),
    ],
)


@dataclass
class CliNetwork(CliNode):
    COMMAND = "network"
    SUBCOMMANDS = SERVER_LEVEL.cli_map()

    server: Optional[CliNode] = subcommand()


@dataclass(frozen=True)
class Network(ResolvableNode[CliNetwork]):
    server: Server

    @classmethod
    def resolve(cls, cli: CliNetwork, scope: ResolutionScope, **_: Any) -> "Network":
        return cls(SERVER_LEVEL.resolve(cli.server, scope))

    def to_cli(self) -> CliNetwork:
        return CliNetwork(server=self.server.to_cli())

    def process(self, scope: ResolutionScope) -> PipelineResult:
        return self.server.process(scope)


@dataclass
class CliOffline(CliNode):
    COMMAND = "offline"
    SUBCOMMANDS = CONTRACT_LEVEL.cli_map()

    contract: Optional[CliNode] = subcommand()


@dataclass(frozen=True)
class Offline(ResolvableNode[CliOffline]):
    contract: Contract

    @classmethod
    def resolve(cls, cli: CliOffline, scope: ResolutionScope, **_: Any) -> "Offline":
        return cls(CONTRACT_LEVEL.resolve(cli.contract, scope.with_connection(None)))

    def to_cli(self) -> CliOffline:
        return CliOffline(contract=self.contract.to_cli())

    def process(self, scope: ResolutionScope) -> PipelineResult:
        return self.contract.process(scope.with_connection(None))


MODE_LEVEL = VariantLevel(
    "mode",
    "How would you like to construct the transaction?",
    [
        Variant("network", CliNetwork, Network, "online: validate, sign and send through an RPC endpoint"),
        Variant("offline", CliOffline, Offline, "offline: sign without network access for later relay"),
    ],
)


# Root ------------------------------------------------------------------------


@dataclass
class CliCall(CliNode):
    COMMAND = "call"
    SUBCOMMANDS = MODE_LEVEL.cli_map()

    mode: Optional[CliNode] = subcommand()


@dataclass(frozen=True)
class Call(ResolvableNode[CliCall]):
    mode: Union[Network, Offline]

    @classmethod
    def resolve(cls, cli: CliCall, scope: ResolutionScope, **_: Any) -> "Call":
        return cls(MODE_LEVEL.resolve(cli.mode, scope))

    def to_cli(self) -> CliCall:
        return CliCall(mode=self.mode.to_cli())

    @property
    def connection(self) -> Optional[ConnectionConfig]:
        if isinstance(self.mode, Network):
            return self.mode.server.connection
        return None

    def process(self, scope: ResolutionScope) -> PipelineResult:
        return self.mode.process(scope)


def parse_command(argv: Sequence[str]) -> CliCall:
    """Parse the arguments following ``call`` into CLI records."""

    return CliCall.from_args(list(argv))
