# tests/test_smoke.py
from __future__ import annotations

import pytest

from ytrewards.ledger.types import SYSTEM_SUPPLY, ZERO_ADDRESS, SystemSupply, normalize_address, to_party


def test_imports_smoke() -> None:
    # If this test runs, basic imports and pythonpath are working.
    assert True


def test_system_supply_is_a_singleton() -> None:
    assert SystemSupply() is SYSTEM_SUPPLY
    assert to_party(ZERO_ADDRESS) is SYSTEM_SUPPLY
    assert to_party("0x" + "0" * 40) is SYSTEM_SUPPLY


@pytest.mark.parametrize("bad", ["", "0x", "0x123", "hello", "0x" + "g" * 40])
def test_normalize_address_rejects_garbage(bad) -> None:
    with pytest.raises(ValueError):
        normalize_address(bad)
