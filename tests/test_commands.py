import json
from pathlib import Path

import pytest

from neartx.commands import (
    Call,
    CliCall,
    CliCallFunction,
    CliSignKeychain,
    Network,
    Offline,
    SignKeychain,
    SignPrivateKey,
    parse_command,
)
from neartx.config import CLIConfig
from neartx.keys import SecretKey
from neartx.prompts import FieldResolutionFailed, Prompter
from neartx.resolve import CLIError, ResolutionScope
from neartx.signing import PipelineState, SubmitMode
from neartx.transaction import GasLimitExceeded, encode_block_hash
from neartx.units import ONE_TERAGAS, NearGas

KEY = SecretKey(bytes([6]) * 32)
BLOCK_HASH = encode_block_hash(bytes([2]) * 32)


class StubRPC:
    def __init__(self, missing=()) -> None:
        self.missing = set(missing)
        self.checked: list[str] = []

    def account_exists(self, account_id: str) -> bool:
        self.checked.append(account_id)
        return account_id not in self.missing


class ScriptedInput:
    def __init__(self, *answers: str) -> None:
        self.answers = list(answers)

    def __call__(self, _prompt: str) -> str:
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {_prompt}")
        return self.answers.pop(0)


def never_prompt(prompt: str) -> str:
    raise AssertionError(f"unexpected prompt: {prompt}")


def make_scope(prompter: Prompter, keychain_root: Path, rpc: StubRPC | None = None) -> ResolutionScope:
    rpc = rpc or StubRPC()
    return ResolutionScope(
        prompter=prompter,
        config=CLIConfig(keychain_root=keychain_root),
        rpc_factory=lambda _connection: rpc,
    )


def write_offline_key(root: Path) -> None:
    path = root / "default" / "alice.test.json"
    path.parent.mkdir(parents=True)
    path.write_text(
        json.dumps({"account_id": "alice.test", "public_key": str(KEY.public_key()), "private_key": str(KEY)})
    )


ONLINE_ARGS = [
    "network", "testnet",
    "contract", "contract.test",
    "call-function", "--prepaid-gas", "5 TeraGas", "--attached-deposit", "0 NEAR",
    "set_greeting", '{"text": "hi"}',
    "signer", "alice.test",
    "sign-with-keychain",
    "send",
]


def test_parse_command_builds_cli_records():
    cli = parse_command(ONLINE_ARGS)

    call_function = cli.mode.server.contract.call
    assert isinstance(call_function, CliCallFunction)
    assert call_function.gas == NearGas(5 * ONE_TERAGAS)
    assert call_function.method_name == "set_greeting"
    assert call_function.args == '{"text": "hi"}'
    assert isinstance(call_function.send_from.sign_option, CliSignKeychain)
    assert cli.to_cli_args() == ONLINE_ARGS


def test_parse_command_stops_positionals_at_subcommand():
    cli = parse_command(["network", "testnet", "contract", "contract.test", "call-function", "signer"])

    call_function = cli.mode.server.contract.call
    assert call_function.method_name is None
    assert call_function.send_from is not None


@pytest.mark.parametrize(
    "argv",
    [
        ["network", "betanet"],
        ["offline", "contract", "c.test", "call-function", "--prepaid-gas", "lots", "m", "{}"],
        ["network", "custom", "--url", "not-a-url"],
        ["network", "testnet", "contract", "a.test", "b.test", "c.test"],
    ],
)
def test_parse_command_rejects_bad_arguments(argv):
    with pytest.raises(CLIError):
        parse_command(argv)


def test_online_round_trip(tmp_path: Path):
    scope = make_scope(Prompter.disabled(), tmp_path)

    resolved = Call.resolve(parse_command(ONLINE_ARGS), scope)

    assert isinstance(resolved.mode, Network)
    sign_option = resolved.mode.server.contract.call.send_from.sign_option
    assert sign_option == SignKeychain(submit=sign_option.submit)
    assert sign_option.submit.mode is SubmitMode.SEND
    assert Call.resolve(resolved.to_cli(), scope) == resolved
    assert Call.resolve(parse_command(resolved.to_cli_args()), scope) == resolved


def test_offline_round_trip(tmp_path: Path):
    write_offline_key(tmp_path)
    argv = [
        "offline",
        "contract", "contract.test",
        "call-function", "--prepaid-gas", "30 TeraGas", "--attached-deposit", "1 NEAR", "ping", "{}",
        "signer", "alice.test",
        "sign-with-keychain", "--nonce", "7", "--block-hash", BLOCK_HASH,
        "save", "--file", str(tmp_path / "out.json"),
    ]
    scope = make_scope(Prompter.disabled(), tmp_path)

    resolved = Call.resolve(parse_command(argv), scope)

    assert isinstance(resolved.mode, Offline)
    assert resolved.connection is None
    assert resolved.to_cli_args() == argv
    assert Call.resolve(resolved.to_cli(), scope) == resolved


def test_private_key_round_trip(tmp_path: Path):
    argv = [
        "network", "custom", "--url", "http://127.0.0.1:3030",
        "contract", "contract.test",
        "call-function", "--prepaid-gas", "100 TeraGas", "--attached-deposit", "0 NEAR", "ping", "{}",
        "signer", "alice.test",
        "sign-with-private-key",
        "--signer-public-key", str(KEY.public_key()),
        "--signer-private-key", str(KEY),
        "display",
    ]
    scope = make_scope(Prompter.disabled(), tmp_path)

    resolved = Call.resolve(parse_command(argv), scope)

    assert resolved.connection.rpc_url() == "http://127.0.0.1:3030"
    assert isinstance(resolved.mode.server.contract.call.send_from.sign_option, SignPrivateKey)
    assert resolved.to_cli_args() == argv
    assert Call.resolve(resolved.to_cli(), scope) == resolved


def test_interactive_resolution_produces_replayable_command(tmp_path: Path):
    answers = ScriptedInput(
        "set_greeting",
        "",
        "",
        "",
        "alice.test",
        "sign-with-private-key",
        str(KEY.public_key()),
        str(KEY),
        "display",
    )
    prompter = Prompter(answers, output_func=lambda _msg: None)
    scope = make_scope(prompter, tmp_path)

    resolved = Call.resolve(
        parse_command(["network", "testnet", "contract", "contract.test", "call-function"]), scope
    )

    assert answers.answers == []
    assert resolved.to_cli_args() == [
        "network", "testnet",
        "contract", "contract.test",
        "call-function", "--prepaid-gas", "100 TeraGas", "--attached-deposit", "0 NEAR",
        "set_greeting", "{}",
        "signer", "alice.test",
        "sign-with-private-key",
        "--signer-public-key", str(KEY.public_key()),
        "--signer-private-key", str(KEY),
        "display",
    ]


def test_gas_above_ceiling_fails_before_deposit_prompt(tmp_path: Path):
    argv = ["network", "testnet", "contract", "contract.test", "call-function", "--prepaid-gas", "400 TeraGas", "m", "{}"]
    scope = make_scope(Prompter(never_prompt), tmp_path)

    with pytest.raises(GasLimitExceeded) as excinfo:
        Call.resolve(parse_command(argv), scope)

    assert excinfo.value.gas == 400 * ONE_TERAGAS


def test_interactive_gas_above_ceiling_is_reprompted(tmp_path: Path):
    output: list[str] = []
    answers = ScriptedInput("400 TeraGas", "250 TeraGas", "0 NEAR")
    argv = ["network", "testnet", "contract", "contract.test", "call-function", "m", "{}",
            "signer", "alice.test", "sign-with-keychain", "display"]
    scope = make_scope(Prompter(answers, output_func=output.append), tmp_path)

    resolved = Call.resolve(parse_command(argv), scope)

    assert resolved.mode.server.contract.call.gas == 250 * ONE_TERAGAS
    assert "You need to enter a value of no more than 300 TeraGas" in output


def test_missing_signer_account_is_reprompted(tmp_path: Path):
    output: list[str] = []
    rpc = StubRPC(missing={"ghost.test"})
    argv = list(ONLINE_ARGS)
    argv[argv.index("alice.test")] = "ghost.test"
    scope = make_scope(Prompter(ScriptedInput("alice.test"), output_func=output.append), tmp_path, rpc)

    resolved = Call.resolve(parse_command(argv), scope)

    assert resolved.mode.server.contract.call.send_from.sender_account_id == "alice.test"
    assert "Account <ghost.test> doesn't exist" in output
    assert rpc.checked == ["contract.test", "ghost.test", "alice.test"]


def test_missing_account_without_prompts_fails(tmp_path: Path):
    argv = list(ONLINE_ARGS)
    argv[argv.index("contract.test")] = "ghost.test"
    scope = make_scope(Prompter.disabled(), tmp_path, StubRPC(missing={"ghost.test"}))

    with pytest.raises(FieldResolutionFailed) as excinfo:
        Call.resolve(parse_command(argv), scope)

    assert excinfo.value.field == "contract_account_id"


def test_offline_rejects_send(tmp_path: Path):
    write_offline_key(tmp_path)
    argv = [
        "offline", "contract", "contract.test", "call-function", "--prepaid-gas", "5 TeraGas",
        "--attached-deposit", "0 NEAR", "m", "{}", "signer", "alice.test",
        "sign-with-keychain", "--nonce", "1", "--block-hash", BLOCK_HASH, "send",
    ]

    with pytest.raises(FieldResolutionFailed) as excinfo:
        Call.resolve(parse_command(argv), make_scope(Prompter.disabled(), tmp_path))

    assert excinfo.value.field == "submit"


def test_offline_prompts_for_reference_values(tmp_path: Path):
    write_offline_key(tmp_path)
    argv = [
        "offline", "contract", "contract.test", "call-function", "--prepaid-gas", "5 TeraGas",
        "--attached-deposit", "0 NEAR", "m", "{}", "signer", "alice.test", "sign-with-keychain", "display",
    ]
    scope = make_scope(Prompter(ScriptedInput("12", BLOCK_HASH), output_func=lambda _msg: None), tmp_path)

    resolved = Call.resolve(parse_command(argv), scope)

    sign_option = resolved.mode.contract.call.send_from.sign_option
    assert (sign_option.nonce, sign_option.block_hash) == (12, BLOCK_HASH)


def test_private_key_must_match_public_key(tmp_path: Path):
    other = SecretKey(bytes([9]) * 32)
    argv = [
        "offline", "contract", "contract.test", "call-function", "--prepaid-gas", "5 TeraGas",
        "--attached-deposit", "0 NEAR", "m", "{}", "signer", "alice.test", "sign-with-private-key",
        "--signer-public-key", str(KEY.public_key()), "--signer-private-key", str(other),
    ]

    with pytest.raises(FieldResolutionFailed) as excinfo:
        Call.resolve(parse_command(argv), make_scope(Prompter.disabled(), tmp_path))

    assert excinfo.value.field == "signer_private_key"


def test_offline_process_saves_signed_transaction(tmp_path: Path):
    write_offline_key(tmp_path)
    out = tmp_path / "signed.json"
    argv = [
        "offline", "contract", "contract.test", "call-function", "--prepaid-gas", "5 TeraGas",
        "--attached-deposit", "0 NEAR", "m", "{}", "signer", "alice.test",
        "sign-with-keychain", "--nonce", "3", "--block-hash", BLOCK_HASH, "save", "--file", str(out),
    ]
    scope = make_scope(Prompter.disabled(), tmp_path)

    result = Call.resolve(parse_command(argv), scope).process(scope)

    assert result.state is PipelineState.SAVED
    document = json.loads(out.read_text())
    assert document["receiver_id"] == "contract.test"
    assert document["signer_id"] == "alice.test"
    assert document["public_key"] == str(KEY.public_key())
    assert document["nonce"] == 3


def test_empty_command_requires_prompts(tmp_path: Path):
    with pytest.raises(FieldResolutionFailed) as excinfo:
        Call.resolve(CliCall(), make_scope(Prompter.disabled(), tmp_path))

    assert excinfo.value.field == "mode"


class CountingFactory:
    def __init__(self) -> None:
        self.clients: list[OnlineRPC] = []

    def __call__(self, connection) -> "OnlineRPC":
        client = OnlineRPC()
        self.clients.append(client)
        return client


class OnlineRPC(StubRPC):
    def __init__(self) -> None:
        super().__init__()
        self.sent: list[str] = []

    def view_access_key(self, account_id, public_key):
        return {"nonce": 4, "permission": "FullAccess"}

    def latest_final_block_hash(self):
        return BLOCK_HASH

    def broadcast_tx_commit(self, signed_b64):
        self.sent.append(signed_b64)
        return {"status": {"SuccessValue": ""}, "transaction": {"hash": "TxHash"}}


def test_one_client_per_connection_across_resolve_and_process(tmp_path: Path):
    argv = [
        "network", "testnet",
        "contract", "contract.test",
        "call-function", "--prepaid-gas", "5 TeraGas", "--attached-deposit", "0 NEAR", "ping", "{}",
        "signer", "alice.test",
        "sign-with-private-key",
        "--signer-public-key", str(KEY.public_key()),
        "--signer-private-key", str(KEY),
        "send",
    ]
    factory = CountingFactory()
    scope = ResolutionScope(
        prompter=Prompter.disabled(),
        config=CLIConfig(keychain_root=tmp_path),
        rpc_factory=factory,
    )

    result = Call.resolve(parse_command(argv), scope).process(scope)

    assert result.state is PipelineState.SUBMITTED
    assert len(factory.clients) == 1
    client = factory.clients[0]
    assert client.checked == ["contract.test", "alice.test"]
    assert client.sent == [result.serialized]


def test_positional_values_may_spell_subcommand_names(tmp_path: Path):
    argv = [
        "network", "testnet",
        "contract", "call-function",
        "call-function", "--prepaid-gas", "5 TeraGas", "--attached-deposit", "0 NEAR", "signer", "{}",
        "signer", "signer",
        "sign-with-keychain",
        "display",
    ]
    scope = make_scope(Prompter.disabled(), tmp_path)

    cli = parse_command(argv)
    resolved = Call.resolve(cli, scope)

    call_function = resolved.mode.server.contract.call
    assert resolved.mode.server.contract.contract_account_id == "call-function"
    assert call_function.method_name == "signer"
    assert call_function.send_from.sender_account_id == "signer"
    assert cli.to_cli_args() == argv
    assert resolved.to_cli_args() == argv
    assert Call.resolve(parse_command(resolved.to_cli_args()), scope) == resolved


def test_deposit_above_u128_fails(tmp_path: Path):
    argv = list(ONLINE_ARGS)
    argv[argv.index("0 NEAR")] = "1000000000000000 NEAR"
    scope = make_scope(Prompter(never_prompt), tmp_path)

    with pytest.raises(FieldResolutionFailed) as excinfo:
        Call.resolve(parse_command(argv), scope)

    assert excinfo.value.field == "attached_deposit"
    assert "128-bit" in str(excinfo.value)


def test_interactive_deposit_above_u128_is_reprompted(tmp_path: Path):
    output: list[str] = []
    answers = ScriptedInput("1000000000000000 NEAR", "1 NEAR")
    argv = ["network", "testnet", "contract", "contract.test", "call-function", "--prepaid-gas", "5 TeraGas",
            "m", "{}", "signer", "alice.test", "sign-with-keychain", "display"]
    scope = make_scope(Prompter(answers, output_func=output.append), tmp_path)

    resolved = Call.resolve(parse_command(argv), scope)

    assert resolved.mode.server.contract.call.deposit == 10**24
    assert any("128-bit" in line for line in output)
