"""Resolution of partially specified command levels.

Every command level comes as a pair of records:

* a CLI record (``CliNode`` subclass) where every field is optional. It
  parses itself from a flat token list and renders back into one.
* a domain record (``ResolvableNode`` subclass) where every field is
  resolved. ``resolve`` fills the gaps of a CLI record through network
  checks and prompts; ``to_cli`` is its inverse.

Resolving ``node.to_cli()`` again with prompts disabled and network checks
accepting yields a record equal to ``node``.
"""

from __future__ import annotations

import argparse
import logging
from collections import deque
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from .config import CLIConfig, ConnectionConfig
from .prompts import FieldResolutionFailed, Prompter
from .rpc_client import NearRPCClient, account_exists
from .transaction import account_id_problem

logger = logging.getLogger(__name__)

__all__ = [
    "CLIError",
    "CliNode",
    "FieldResolutionFailed",
    "ResolutionScope",
    "ResolvableNode",
    "Variant",
    "VariantLevel",
    "flag",
    "positional",
    "resolve_account_id",
    "subcommand",
]


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


RPCFactory = Callable[[ConnectionConfig], NearRPCClient]


def _default_rpc_factory(connection: ConnectionConfig) -> NearRPCClient:
    return NearRPCClient.for_connection(connection)


@dataclass(frozen=True)
class ResolutionScope:
    """Read-only context threaded through every command level."""

    prompter: Prompter
    config: CLIConfig = field(default_factory=CLIConfig)
    connection: Optional[ConnectionConfig] = None
    rpc: Optional[NearRPCClient] = None
    rpc_factory: RPCFactory = _default_rpc_factory
    # Shared by every scope derived from this one: one client per connection.
    clients: Dict[ConnectionConfig, NearRPCClient] = field(
        default_factory=dict, compare=False, repr=False
    )

    @property
    def online(self) -> bool:
        return self.connection is not None

    @property
    def keychain_root(self) -> Path:
        return self.config.keychain_root

    def with_connection(self, connection: Optional[ConnectionConfig]) -> "ResolutionScope":
        if connection == self.connection and (connection is None or self.rpc is not None):
            return self
        rpc = None
        if connection is not None:
            rpc = self.clients.get(connection)
            if rpc is None:
                rpc = self.clients[connection] = self.rpc_factory(connection)
        return replace(self, connection=connection, rpc=rpc)


# CLI records -----------------------------------------------------------------

_FLAG = "flag"
_POSITIONAL = "positional"
_SUBCOMMAND = "subcommand"


def flag(name: str, parse: Callable[[str], Any] = str) -> Any:
    """Declare an optional ``--name VALUE`` field."""

    return field(default=None, metadata={"kind": _FLAG, "flag": name, "parse": parse})


def positional(parse: Callable[[str], Any] = str) -> Any:
    return field(default=None, metadata={"kind": _POSITIONAL, "parse": parse})


def subcommand() -> Any:
    """Declare the field holding the next level's CLI record."""

    return field(default=None, metadata={"kind": _SUBCOMMAND})


class _LevelParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise CLIError(f"{self.prog}: {message}")


class CliNode:
    """Base for CLI records.

    Subclasses are dataclasses declaring fields with :func:`flag`,
    :func:`positional` and at most one :func:`subcommand`. ``SUBCOMMANDS``
    maps each token accepted after this level to its CLI record type.
    """

    COMMAND: ClassVar[str] = ""
    SUBCOMMANDS: ClassVar[Dict[str, Type["CliNode"]]] = {}

    @classmethod
    def _fields(cls, kind: str) -> list:
        return [item for item in fields(cls) if item.metadata.get("kind") == kind]  # type: ignore[arg-type]

    @classmethod
    def subcommand_token(cls, child: "CliNode") -> str:
        for token, child_type in cls.SUBCOMMANDS.items():
            if type(child) is child_type:
                return token
        raise CLIError(f"{type(child).__name__} cannot follow {cls.COMMAND or cls.__name__}")

    def to_cli_args(self) -> List[str]:
        """Render flags, then positionals, then the subcommand, in declared order."""

        args: List[str] = []
        for item in self._fields(_FLAG):
            value = getattr(self, item.name)
            if value is not None:
                args.extend([item.metadata["flag"], str(value)])
        for item in self._fields(_POSITIONAL):
            value = getattr(self, item.name)
            if value is None:
                break
            args.append(str(value))
        for item in self._fields(_SUBCOMMAND):
            child = getattr(self, item.name)
            if child is not None:
                args.append(self.subcommand_token(child))
                args.extend(child.to_cli_args())
        return args

    @classmethod
    def _positional_count(cls, rest: List[str], declared: int) -> int:
        """How many leading tokens of *rest* fill positional slots.

        Picks the longest prefix (up to *declared*) that is followed by a
        subcommand token, so a positional value may itself spell a
        subcommand name. Without such a prefix every slot takes a token.
        """

        for count in range(min(declared, len(rest) - 1), -1, -1):
            if rest[count] in cls.SUBCOMMANDS:
                return count
        return min(declared, len(rest))

    @classmethod
    def from_args(cls, tokens: Sequence[str]) -> "CliNode":
        parser = _LevelParser(prog=cls.COMMAND or cls.__name__, add_help=False, allow_abbrev=False)
        for item in cls._fields(_FLAG):
            parser.add_argument(
                item.metadata["flag"], dest=item.name, type=item.metadata["parse"], default=None
            )
        parser.add_argument("rest", nargs=argparse.REMAINDER)
        namespace = parser.parse_args(list(tokens))

        values: Dict[str, Any] = {
            item.name: getattr(namespace, item.name) for item in cls._fields(_FLAG)
        }
        rest = deque(namespace.rest)
        positionals = cls._fields(_POSITIONAL)
        for item in positionals[: cls._positional_count(list(rest), len(positionals))]:
            raw = rest.popleft()
            try:
                values[item.name] = item.metadata["parse"](raw)
            except ValueError as exc:
                raise CLIError(f"{cls.COMMAND}: invalid {item.name} {raw!r}: {exc}") from exc

        subcommand_fields = cls._fields(_SUBCOMMAND)
        if rest:
            token = rest.popleft()
            if not subcommand_fields or token not in cls.SUBCOMMANDS:
                expected = ", ".join(cls.SUBCOMMANDS) or "nothing"
                raise CLIError(
                    f"{cls.COMMAND or cls.__name__}: unexpected argument {token!r} (expected {expected})"
                )
            values[subcommand_fields[0].name] = cls.SUBCOMMANDS[token].from_args(list(rest))
        return cls(**values)


# Domain records --------------------------------------------------------------

CliT = TypeVar("CliT", bound=CliNode)
NodeT = TypeVar("NodeT", bound="ResolvableNode")


class ResolvableNode(Generic[CliT]):
    """Base for fully resolved command levels."""

    @classmethod
    def resolve(cls: Type[NodeT], cli: CliT, scope: ResolutionScope, **ancestors: Any) -> NodeT:
        raise NotImplementedError

    def to_cli(self) -> CliT:
        raise NotImplementedError

    def to_cli_args(self) -> List[str]:
        return self.to_cli().to_cli_args()


@dataclass(frozen=True)
class Variant:
    token: str
    cli: Type[CliNode]
    node: Type[ResolvableNode]
    description: str
    online_only: bool = False


class VariantLevel:
    """A closed set of alternatives selected by a subcommand token."""

    def __init__(self, field_name: str, prompt: str, variants: Sequence[Variant]) -> None:
        self.field_name = field_name
        self.prompt = prompt
        self.variants = tuple(variants)

    def cli_map(self) -> Dict[str, Type[CliNode]]:
        return {variant.token: variant.cli for variant in self.variants}

    def _by_cli(self, cli: CliNode) -> Variant:
        for variant in self.variants:
            if type(cli) is variant.cli:
                return variant
        raise CLIError(f"{type(cli).__name__} is not a valid {self.field_name}")

    def resolve(self, cli: Optional[CliNode], scope: ResolutionScope, **ancestors: Any) -> Any:
        if cli is None:
            available = [v for v in self.variants if scope.online or not v.online_only]
            if len(available) == 1:
                variant = available[0]
            else:
                token = scope.prompter.choice(
                    self.field_name, self.prompt, {v.token: v.description for v in available}
                )
                variant = next(v for v in available if v.token == token)
            cli = variant.cli()
        else:
            variant = self._by_cli(cli)
            if variant.online_only and not scope.online:
                raise FieldResolutionFailed(
                    self.field_name, f"{variant.token!r} is not available in offline mode"
                )
        logger.debug("Resolving %s as %s", self.field_name, variant.token)
        return variant.node.resolve(cli, scope, **ancestors)


def resolve_account_id(
    value: Optional[str], scope: ResolutionScope, *, field_name: str, prompt: str
) -> str:
    """Resolve an account id, checking existence when online.

    A supplied id that is malformed or unknown to the network is reported
    and re-prompted rather than failing outright.
    """

    def problem(candidate: str) -> Optional[str]:
        issue = account_id_problem(candidate)
        if issue:
            return issue
        if not account_exists(scope.rpc, candidate):
            return f"Account <{candidate}> doesn't exist"
        return None

    if value is not None:
        issue = problem(value)
        if issue is None:
            return value
        if not scope.prompter.interactive:
            raise FieldResolutionFailed(field_name, issue)
        scope.prompter.notify(issue)
    return scope.prompter.text(field_name, prompt, validate=problem)
