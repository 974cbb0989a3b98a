from __future__ import annotations

import heapq
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Mapping, Optional

from ledgershare.db.models import Expense, ExpenseDraft
from ledgershare.errors import InvalidInput
from ledgershare.logging import get_logger
from ledgershare.services.balance import all_balances
from ledgershare.services.expenses import require_group, today
from ledgershare.services.split import to_money
from ledgershare.services.store import LedgerStore

SETTLEMENT_DESCRIPTION = "Settlement"

log = get_logger(__name__)


@dataclass(slots=True)
class Transfer:
    from_user: int
    to_user: int
    amount: Decimal


@dataclass(slots=True)
class Settlement:
    from_user_id: int
    from_username: str
    to_user_id: int
    to_username: str
    amount: Decimal


def settle(balances: Mapping[int, Decimal]) -> List[Transfer]:
    """Turn net balances into transfers, largest debtor paying largest creditor first.

    Both sides sit in max-heaps; after each transfer the side that is not
    fully paid off goes back into its heap with what is left. Ties keep the
    iteration order of ``balances``.
    """
    creditors: list[tuple[Decimal, int, int]] = []
    debtors: list[tuple[Decimal, int, int]] = []

    for order, (user_id, amount) in enumerate(balances.items()):
        if amount > 0:
            heapq.heappush(creditors, (-amount, order, user_id))
        elif amount < 0:
            heapq.heappush(debtors, (amount, order, user_id))

    transfers: list[Transfer] = []

    while creditors and debtors:
        cred_neg, cred_order, cred_id = heapq.heappop(creditors)
        debt_neg, debt_order, debt_id = heapq.heappop(debtors)

        cred_amount = -cred_neg
        debt_amount = -debt_neg
        transfer_amount = min(cred_amount, debt_amount)
        transfers.append(Transfer(from_user=debt_id, to_user=cred_id, amount=transfer_amount))

        cred_amount -= transfer_amount
        debt_amount -= transfer_amount

        if cred_amount > 0:
            heapq.heappush(creditors, (-cred_amount, cred_order, cred_id))
        if debt_amount > 0:
            heapq.heappush(debtors, (-debt_amount, debt_order, debt_id))

    return transfers


async def settlements(store: LedgerStore, group_id: int, *, actor_id: Optional[int] = None) -> list[Settlement]:
    await require_group(store, group_id, actor_id)
    members = await store.get_group_members(group_id)
    usernames = {member.user_id: member.username for member in members}

    balances = await all_balances(store, group_id, usernames.keys())
    result = [
        Settlement(
            from_user_id=transfer.from_user,
            from_username=usernames[transfer.from_user],
            to_user_id=transfer.to_user,
            to_username=usernames[transfer.to_user],
            amount=transfer.amount,
        )
        for transfer in settle(balances)
    ]
    log.info("settlements.computed", group_id=group_id, members=len(members), transfers=len(result))
    return result


async def record_settlement(
    store: LedgerStore,
    group_id: int,
    from_user_id: int,
    to_user_id: int,
    amount: Decimal | int | float | str,
    *,
    actor_id: Optional[int] = None,
    settled_on: Optional[date] = None,
) -> Expense:
    """Record a payment from ``from_user_id`` to ``to_user_id``.

    Stored as an ordinary expense paid by the debtor with a single split owed
    by the creditor, so balance queries need no special casing.
    """
    await require_group(store, group_id, actor_id)

    total = to_money(amount)
    if total <= 0:
        raise InvalidInput("Settlement amount must be positive")
    if from_user_id == to_user_id:
        raise InvalidInput("Cannot settle with yourself")
    for user_id in (from_user_id, to_user_id):
        if not await store.is_group_member(group_id, user_id):
            raise InvalidInput(f"User {user_id} is not a member of group {group_id}")

    draft = ExpenseDraft(
        group_id=group_id,
        description=SETTLEMENT_DESCRIPTION,
        amount=total,
        paid_by_user_id=from_user_id,
        expense_date=settled_on or today(),
    )
    expense = await store.save_expense_with_splits(draft, {to_user_id: total})
    log.info(
        "settlement.recorded",
        group_id=group_id,
        expense_id=expense.id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=str(total),
    )
    return expense
