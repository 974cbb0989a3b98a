from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from ledgershare.errors import InvalidInput

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | float | str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidInput(f"Not a valid amount: {value!r}") from exc
    if not amount.is_finite():
        raise InvalidInput(f"Not a valid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def allocate(total: Decimal | int | float | str, participants: Iterable[int]) -> dict[int, Decimal]:
    """Split ``total`` evenly between ``participants``.

    Every share is rounded half-up to the cent. The cents lost or gained by
    rounding are then handed out one at a time starting from the first
    participant, so the shares always add up to ``total`` exactly.
    """
    amount = to_money(total)
    if amount <= 0:
        raise InvalidInput("Amount must be positive")

    consumers = list(dict.fromkeys(participants))
    if not consumers:
        raise InvalidInput("At least one participant is required")

    n = len(consumers)
    base_share = (amount / n).quantize(CENT, rounding=ROUND_HALF_UP)

    shares = [base_share for _ in consumers]
    remainder = amount - sum(shares, ZERO)

    idx = 0
    step = CENT if remainder > 0 else -CENT
    while remainder != 0:
        shares[idx] += step
        remainder -= step
        idx = (idx + 1) % n

    return {consumer: share for consumer, share in zip(consumers, shares)}
