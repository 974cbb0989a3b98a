from __future__ import annotations

from typing import Optional

from ledgershare.db.models import Expense, Group
from ledgershare.errors import InvalidInput
from ledgershare.logging import get_logger
from ledgershare.services.expenses import require_group
from ledgershare.services.store import GroupStore

log = get_logger(__name__)


async def create_group(store: GroupStore, name: str, description: Optional[str], created_by: int) -> Group:
    name = name.strip()
    if not name:
        raise InvalidInput("Group name must not be empty")
    if len(name) > 100:
        raise InvalidInput("Group name must be at most 100 characters")
    group = await store.create_group(name, description, created_by)
    log.info("group.created", group_id=group.id, created_by=created_by)
    return group


async def add_member(store: GroupStore, group_id: int, user_id: int, *, actor_id: Optional[int] = None) -> bool:
    """Add a user to a group. Returns False when they already belong to it."""
    await require_group(store, group_id, actor_id)
    added = await store.add_member(group_id, user_id)
    if added:
        log.info("group.member_added", group_id=group_id, user_id=user_id)
    return added


async def remove_member(store: GroupStore, group_id: int, user_id: int, *, actor_id: Optional[int] = None) -> None:
    await require_group(store, group_id, actor_id)
    if not await store.is_group_member(group_id, user_id):
        raise InvalidInput(f"User {user_id} is not a member of group {group_id}")
    # a departing member would take their share of the zero sum with them
    outstanding = await store.remove_member_if_settled(group_id, user_id)
    if outstanding != 0:
        raise InvalidInput(f"User {user_id} still has a balance of {outstanding} in group {group_id}")
    log.info("group.member_removed", group_id=group_id, user_id=user_id)


async def group_expenses(store: GroupStore, group_id: int, *, actor_id: Optional[int] = None) -> list[Expense]:
    await require_group(store, group_id, actor_id)
    return await store.get_expenses_in_group(group_id)


async def expense_details(store: GroupStore, expense_id: int, *, actor_id: Optional[int] = None) -> Optional[Expense]:
    expense = await store.get_expense(expense_id)
    if expense is not None and actor_id is not None:
        await require_group(store, expense.group_id, actor_id)
    return expense
