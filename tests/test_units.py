import pytest

from neartx.units import ONE_NEAR, ONE_TERAGAS, NearBalance, NearGas, UnitParseError


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("100 TeraGas", 100 * ONE_TERAGAS),
        ("5tgas", 5 * ONE_TERAGAS),
        ("1.5 TGas", 1_500_000_000_000),
        ("30 GigaGas", 30 * 10**9),
        ("42", 42),
        ("42 gas", 42),
    ],
)
def test_near_gas_parse(raw, expected):
    assert NearGas.parse(raw).inner == expected


@pytest.mark.parametrize("raw", ["", "TeraGas", "10 petagas", "0.5 gas", "-1 TeraGas"])
def test_near_gas_rejects_bad_values(raw):
    with pytest.raises(UnitParseError):
        NearGas.parse(raw)


@pytest.mark.parametrize("gas", [0, 7, 30 * 10**9, 300 * ONE_TERAGAS])
def test_near_gas_string_form_parses_back(gas):
    assert NearGas.parse(str(NearGas(gas))).inner == gas


def test_near_gas_display():
    assert str(NearGas.from_tgas(100)) == "100 TeraGas"
    assert str(NearGas(1_500_000_000_000)) == "1500 GigaGas"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0 NEAR", 0),
        ("10NEAR", 10 * ONE_NEAR),
        ("0.5near", ONE_NEAR // 2),
        ("10000yoctonear", 10000),
    ],
)
def test_near_balance_parse(raw, expected):
    assert NearBalance.parse(raw).to_yoctonear() == expected


def test_near_balance_display_keeps_precision():
    assert str(NearBalance(ONE_NEAR)) == "1 NEAR"
    assert str(NearBalance(ONE_NEAR // 2)) == f"{ONE_NEAR // 2} yoctoNEAR"
    assert NearBalance.parse(str(NearBalance(123))).yoctonear == 123


def test_near_balance_rejects_unknown_unit():
    with pytest.raises(UnitParseError) as excinfo:
        NearBalance.parse("3 eth")
    assert "unknown balance unit" in str(excinfo.value)
