"""Construct, sign and send NEAR function-call transactions."""

from .config import CLIConfig, ConnectionConfig, ConfigurationError, load_cli_config
from .keychain import (
    ExplicitKeySource,
    KeychainKeySource,
    KeyFileMalformed,
    KeyFileNotFound,
    KeyPair,
    NoFullAccessKeyInKeychain,
)
from .keys import KeyFormatError, PublicKey, SecretKey, Signature
from .prompts import FieldResolutionFailed, Prompter
from .rpc_client import AccountNotFound, NearRPCClient, NetworkRequestFailed, RPCError
from .signing import (
    OfflineFieldMissing,
    PipelineResult,
    PipelineState,
    SigningPipeline,
    SubmitMode,
)
from .transaction import (
    MAX_GAS,
    FunctionCallAction,
    GasLimitExceeded,
    SignedTransaction,
    UnsignedTransaction,
    append_action,
    set_identity,
    set_reference,
)
from .units import NearBalance, NearGas

__all__ = [
    "CLIConfig",
    "ConnectionConfig",
    "ConfigurationError",
    "load_cli_config",
    "ExplicitKeySource",
    "KeychainKeySource",
    "KeyFileMalformed",
    "KeyFileNotFound",
    "KeyPair",
    "NoFullAccessKeyInKeychain",
    "KeyFormatError",
    "PublicKey",
    "SecretKey",
    "Signature",
    "FieldResolutionFailed",
    "Prompter",
    "AccountNotFound",
    "NearRPCClient",
    "NetworkRequestFailed",
    "RPCError",
    "OfflineFieldMissing",
    "PipelineResult",
    "PipelineState",
    "SigningPipeline",
    "SubmitMode",
    "MAX_GAS",
    "FunctionCallAction",
    "GasLimitExceeded",
    "SignedTransaction",
    "UnsignedTransaction",
    "append_action",
    "set_identity",
    "set_reference",
    "NearBalance",
    "NearGas",
]
