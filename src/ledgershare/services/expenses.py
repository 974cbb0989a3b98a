from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from ledgershare.config import get_settings
from ledgershare.db.models import Expense, ExpenseDraft, Group
from ledgershare.errors import GroupNotFound, InvalidInput
from ledgershare.logging import get_logger
from ledgershare.services.authz import assert_group_member
from ledgershare.services.split import allocate, to_money
from ledgershare.services.store import LedgerStore

log = get_logger(__name__)


def today() -> date:
    return datetime.now(get_settings().zoneinfo).date()


async def require_group(store: LedgerStore, group_id: int, actor_id: Optional[int] = None) -> Group:
    group = await store.get_group(group_id)
    if group is None:
        raise GroupNotFound(group_id)
    if actor_id is not None:
        await assert_group_member(store, actor_id, group_id)
    return group


async def record_expense(
    store: LedgerStore,
    group_id: int,
    description: str,
    amount: Decimal | int | float | str,
    paid_by_user_id: int,
    expense_date: Optional[date] = None,
    participants: Optional[Iterable[int]] = None,
    *,
    actor_id: Optional[int] = None,
) -> Expense:
    """Record an expense and its splits as one atomic write.

    Without ``participants`` the amount is split across every current member
    of the group; otherwise only across the given subset, which does not have
    to include the payer.
    """
    await require_group(store, group_id, actor_id)

    description = description.strip()
    if not description:
        raise InvalidInput("Description must not be empty")
    total = to_money(amount)

    member_ids = [member.user_id for member in await store.get_group_members(group_id)]
    if paid_by_user_id not in member_ids:
        raise InvalidInput(f"Payer {paid_by_user_id} is not a member of group {group_id}")

    if participants is None:
        consumers = member_ids
    else:
        consumers = list(participants)
        if not consumers:
            raise InvalidInput("At least one participant is required")
        outsiders = sorted(set(consumers) - set(member_ids))
        if outsiders:
            raise InvalidInput(f"Users {outsiders} are not members of group {group_id}")

    shares = allocate(total, consumers)
    draft = ExpenseDraft(
        group_id=group_id,
        description=description,
        amount=total,
        paid_by_user_id=paid_by_user_id,
        expense_date=expense_date or today(),
    )
    expense = await store.save_expense_with_splits(draft, shares)
    log.info(
        "expense.recorded",
        group_id=group_id,
        expense_id=expense.id,
        amount=str(total),
        payer_id=paid_by_user_id,
        participants=len(shares),
        custom_split=participants is not None,
    )
    return expense
