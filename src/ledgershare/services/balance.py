from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Iterable, Optional

from ledgershare.db.models import Expense
from ledgershare.errors import GroupNotFound
from ledgershare.services.split import ZERO
from ledgershare.services.store import LedgerStore


async def _require_group(store: LedgerStore, group_id: int) -> None:
    if await store.get_group(group_id) is None:
        raise GroupNotFound(group_id)


async def _net(store: LedgerStore, group_id: int, user_id: int) -> Decimal:
    total_owed = await store.sum_owed_by_user_in_group(group_id, user_id)
    total_paid = await store.sum_paid_by_user_in_group(group_id, user_id)
    return (total_paid or ZERO) - (total_owed or ZERO)


async def balance(store: LedgerStore, group_id: int, user_id: int) -> Decimal:
    """Net position of a user in a group: what they paid minus what they owe.

    Positive means the group owes the user, negative means the user owes
    the group. Raises ``GroupNotFound`` for an unknown group.
    """
    await _require_group(store, group_id)
    return await _net(store, group_id, user_id)


async def all_balances(
    store: LedgerStore,
    group_id: int,
    user_ids: Optional[Iterable[int]] = None,
) -> dict[int, Decimal]:
    await _require_group(store, group_id)
    if user_ids is None:
        user_ids = [member.user_id for member in await store.get_group_members(group_id)]

    ids = list(user_ids)
    results = await asyncio.gather(*(_net(store, group_id, user_id) for user_id in ids))
    return dict(zip(ids, results))


def balances_from_expenses(expenses: Iterable[Expense]) -> dict[int, Decimal]:
    balances: dict[int, Decimal] = {}
    for expense in expenses:
        for split in expense.splits:
            balances[split.user_id] = balances.get(split.user_id, ZERO) - split.amount_owed
        balances[expense.paid_by_user_id] = balances.get(expense.paid_by_user_id, ZERO) + expense.amount
    return balances
