"""Gas and balance parsing helpers.

Amounts are kept as integers in their smallest denomination (gas units and
yoctoNEAR). The string forms produced by ``str()`` always parse back to the
same integer so resolved commands can be replayed verbatim.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

ONE_TERAGAS = 10**12
ONE_GIGAGAS = 10**9
ONE_NEAR = 10**24

_AMOUNT_RE = re.compile(r"^\s*(?P<value>[0-9]+(?:\.[0-9]+)?)\s*(?P<unit>[A-Za-z]*)\s*$")

_GAS_UNITS = {
    "": 1,
    "gas": 1,
    "ggas": ONE_GIGAGAS,
    "gigagas": ONE_GIGAGAS,
    "tgas": ONE_TERAGAS,
    "teragas": ONE_TERAGAS,
}

_BALANCE_UNITS = {
    "near": ONE_NEAR,
    "n": ONE_NEAR,
    "yoctonear": 1,
    "yocto": 1,
}


class UnitParseError(ValueError):
    """Raised when a gas or balance string cannot be parsed."""


def _split_amount(raw: str, kind: str) -> tuple[Decimal, str]:
    match = _AMOUNT_RE.match(raw)
    if match is None:
        raise UnitParseError(f"invalid {kind} value: {raw!r}")
    try:
        value = Decimal(match.group("value"))
    except InvalidOperation as exc:  # pragma: no cover - regex guards the format
        raise UnitParseError(f"invalid {kind} value: {raw!r}") from exc
    return value, match.group("unit").lower()


def _scale(value: Decimal, multiplier: int, raw: str, kind: str) -> int:
    scaled = value * multiplier
    if scaled != scaled.to_integral_value():
        raise UnitParseError(f"{kind} value {raw!r} is finer than the smallest unit")
    return int(scaled)


@dataclass(frozen=True)
class NearGas:
    """Gas amount in gas units."""

    inner: int

    @classmethod
    def parse(cls, raw: str) -> "NearGas":
        value, unit = _split_amount(raw, "gas")
        if unit not in _GAS_UNITS:
            raise UnitParseError(
                f"unknown gas unit {unit!r} in {raw!r} (use TeraGas, GigaGas or gas)"
            )
        return cls(_scale(value, _GAS_UNITS[unit], raw, "gas"))

    @classmethod
    def from_tgas(cls, tgas: int) -> "NearGas":
        return cls(tgas * ONE_TERAGAS)

    def __str__(self) -> str:
        if self.inner and self.inner % ONE_TERAGAS == 0:
            return f"{self.inner // ONE_TERAGAS} TeraGas"
        if self.inner and self.inner % ONE_GIGAGAS == 0:
            return f"{self.inner // ONE_GIGAGAS} GigaGas"
        return f"{self.inner} gas"


@dataclass(frozen=True)
class NearBalance:
    """Balance in yoctoNEAR."""

    yoctonear: int

    @classmethod
    def parse(cls, raw: str) -> "NearBalance":
        value, unit = _split_amount(raw, "balance")
        if unit not in _BALANCE_UNITS:
            raise UnitParseError(
                f"unknown balance unit {unit!r} in {raw!r} (example: 10NEAR, 0.5near, 10000yoctonear)"
            )
        return cls(_scale(value, _BALANCE_UNITS[unit], raw, "balance"))

    @classmethod
    def from_yoctonear(cls, yoctonear: int) -> "NearBalance":
        return cls(yoctonear)

    def to_yoctonear(self) -> int:
        return self.yoctonear

    def __str__(self) -> str:
        if self.yoctonear % ONE_NEAR == 0:
            return f"{self.yoctonear // ONE_NEAR} NEAR"
        return f"{self.yoctonear} yoctoNEAR"
