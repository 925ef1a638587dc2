"""Shared configuration and connection context for neartx."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Union
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".neartx.yaml"
DEFAULT_KEYCHAIN_ROOT = Path.home() / ".near-credentials"

MAINNET_RPC_URL = "https://archival-rpc.mainnet.near.org"
TESTNET_RPC_URL = "https://archival-rpc.testnet.near.org"
MAINNET_EXPLORER_URL = "https://explorer.mainnet.near.org"
TESTNET_EXPLORER_URL = "https://explorer.testnet.near.org"

# Directory (under the keychain root) holding keys for offline signing and
# for custom networks.
OFFLINE_KEY_DIR_NAME = "default"

DEFAULT_RPC_TIMEOUT = 30.0

NETWORK_NAMES = ("mainnet", "testnet", "custom")


@dataclass(frozen=True)
class ConnectionConfig:
    """Network selected for one invocation.

    ``None`` in place of a ``ConnectionConfig`` means the invocation runs in
    offline posture. Instances are immutable and shared by every command
    level of the resolution tree.
    """

    network: str
    url: str | None = None

    def __post_init__(self) -> None:
        if self.network not in NETWORK_NAMES:
            raise ConfigurationError(f"Unknown network: {self.network}")
        if self.network == "custom" and not self.url:
            raise ConfigurationError("Custom network requires an RPC url")

    @classmethod
    def mainnet(cls, url: str | None = None) -> "ConnectionConfig":
        return cls("mainnet", url)

    @classmethod
    def testnet(cls, url: str | None = None) -> "ConnectionConfig":
        return cls("testnet", url)

    @classmethod
    def custom(cls, url: str) -> "ConnectionConfig":
        return cls("custom", validate_rpc_url(url))

    def rpc_url(self) -> str:
        if self.url:
            return self.url
        if self.network == "mainnet":
            return MAINNET_RPC_URL
        return TESTNET_RPC_URL

    def key_storage_dir_name(self) -> str:
        if self.network == "custom":
            return OFFLINE_KEY_DIR_NAME
        return self.network

    def explorer_url(self) -> str | None:
        if self.network == "mainnet":
            return MAINNET_EXPLORER_URL
        if self.network == "testnet":
            return TESTNET_EXPLORER_URL
        return None


@dataclass(frozen=True)
class Online:
    endpoint: str
    network_name: str


@dataclass(frozen=True)
class Offline:
    pass


Posture = Union[Online, Offline]


def current_posture(connection: ConnectionConfig | None) -> Posture:
    """Return the network posture implied by *connection*."""

    if connection is None:
        return Offline()
    return Online(endpoint=connection.rpc_url(), network_name=connection.network)


def validate_rpc_url(raw: str) -> str:
    parsed = urlparse(raw.strip())
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid RPC endpoint URL: {raw}")
    return raw.strip()


@dataclass
class CLIConfig:
    """Configuration container for the command line tool."""

    keychain_root: Path = DEFAULT_KEYCHAIN_ROOT
    mainnet_url: str | None = None
    testnet_url: str | None = None
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    interactive: bool = True

    def connection_for(self, network: str, url: str | None = None) -> ConnectionConfig:
        """Build a connection for *network*, honoring configured endpoints."""

        if network == "mainnet":
            return ConnectionConfig.mainnet(self.mainnet_url)
        if network == "testnet":
            return ConnectionConfig.testnet(self.testnet_url)
        if url is None:
            raise ConfigurationError("Custom network requires --url")
        return ConnectionConfig.custom(url)


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _section(file_config: Mapping[str, Any], name: str, path: Path) -> Mapping[str, Any]:
    section = file_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None


def _coerce_timeout(raw: Any, *, source: str) -> float | None:
    if raw is None:
        return None
    try:
        timeout = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid timeout in {source}: {raw}") from exc
    if timeout <= 0:
        raise ConfigurationError(f"Timeout must be positive in {source}: {raw}")
    return timeout


def _coerce_url(raw: Any, *, source: str) -> str | None:
    if raw is None:
        return None
    try:
        return validate_rpc_url(str(raw))
    except ConfigurationError as exc:
        raise ConfigurationError(f"{exc} (from {source})") from exc


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def load_cli_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> CLIConfig:
    """Load CLI configuration from overrides, environment and optional YAML."""

    env_map = os.environ if env is None else env
    path = Path(config_path).expanduser() if config_path is not None else DEFAULT_CONFIG_PATH
    file_config = _load_config_file(path, required=config_path is not None)
    rpc_section = _section(file_config, "rpc", path)
    keychain_section = _section(file_config, "keychain", path)
    cli_section = _section(file_config, "cli", path)

    override_map = dict(overrides or {})

    keychain_root = _first_value(
        override_map.get("keychain_root"),
        env_map.get("NEARTX_KEYCHAIN_DIR"),
        keychain_section.get("root"),
    )
    mainnet_url = _first_value(
        _coerce_url(override_map.get("mainnet_url"), source="overrides"),
        _coerce_url(env_map.get("NEARTX_MAINNET_RPC_URL"), source="environment"),
        _coerce_url(rpc_section.get("mainnet_url"), source=f"{path} rpc.mainnet_url"),
    )
    testnet_url = _first_value(
        _coerce_url(override_map.get("testnet_url"), source="overrides"),
        _coerce_url(env_map.get("NEARTX_TESTNET_RPC_URL"), source="environment"),
        _coerce_url(rpc_section.get("testnet_url"), source=f"{path} rpc.testnet_url"),
    )
    timeout = _first_value(
        _coerce_timeout(override_map.get("rpc_timeout"), source="overrides"),
        _coerce_timeout(env_map.get("NEARTX_RPC_TIMEOUT"), source="environment"),
        _coerce_timeout(rpc_section.get("timeout"), source=f"{path} rpc.timeout"),
        DEFAULT_RPC_TIMEOUT,
    )
    interactive = _first_value(
        _coerce_bool(override_map.get("interactive")),
        _coerce_bool(env_map.get("NEARTX_INTERACTIVE")),
        _coerce_bool(cli_section.get("interactive")),
        True,
    )

    return CLIConfig(
        keychain_root=Path(keychain_root).expanduser() if keychain_root else DEFAULT_KEYCHAIN_ROOT,
        mainnet_url=mainnet_url,
        testnet_url=testnet_url,
        rpc_timeout=float(timeout),
        interactive=bool(interactive),
    )
