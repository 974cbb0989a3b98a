from decimal import Decimal

import pytest

from ledgershare.errors import InvalidInput
from ledgershare.services.split import allocate, to_money


def test_allocate_even():
    shares = allocate(Decimal("10.00"), [1, 2, 3, 4])
    assert shares == {1: Decimal("2.50"), 2: Decimal("2.50"), 3: Decimal("2.50"), 4: Decimal("2.50")}


def test_allocate_remainder_goes_to_first_participant():
    shares = allocate(Decimal("100.00"), [1, 2, 3])
    assert shares == {1: Decimal("33.34"), 2: Decimal("33.33"), 3: Decimal("33.33")}
    assert sum(shares.values()) == Decimal("100.00")


def test_allocate_not_evenly_divisible_sums_exactly():
    shares = allocate("10.00", [7, 8, 9])
    assert sum(shares.values()) == Decimal("10.00")
    assert list(shares.values()) == [Decimal("3.34"), Decimal("3.33"), Decimal("3.33")]


def test_allocate_rounding_up_takes_cents_back():
    # 0.05 / 3 rounds each share up to 0.02, one cent too many
    shares = allocate("0.05", [1, 2, 3])
    assert sum(shares.values()) == Decimal("0.05")
    assert shares[1] == Decimal("0.01")


def test_allocate_spreads_several_cents():
    shares = allocate("0.10", [1, 2, 3, 4, 5, 6, 7])
    assert sum(shares.values()) == Decimal("0.10")
    assert sorted(shares.values()) == [Decimal("0.01")] * 4 + [Decimal("0.02")] * 3


def test_allocate_single_participant_owes_everything():
    assert allocate(Decimal("42.17"), [5]) == {5: Decimal("42.17")}


def test_allocate_collapses_duplicates():
    shares = allocate(Decimal("9.00"), [1, 2, 1])
    assert shares == {1: Decimal("4.50"), 2: Decimal("4.50")}


def test_allocate_rejects_empty_participants():
    with pytest.raises(InvalidInput):
        allocate(Decimal("10.00"), [])


@pytest.mark.parametrize("total", [Decimal("0"), Decimal("-5.00"), "0.004"])
def test_allocate_rejects_non_positive_total(total):
    with pytest.raises(InvalidInput):
        allocate(total, [1, 2])


def test_to_money_rounds_half_up():
    assert to_money("2.345") == Decimal("2.35")
    assert to_money(3) == Decimal("3.00")
    assert to_money(0.1) == Decimal("0.10")


@pytest.mark.parametrize("value", ["abc", "NaN", "Infinity"])
def test_to_money_rejects_garbage(value):
    with pytest.raises(InvalidInput):
        to_money(value)
