from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Optional, Protocol

from ledgershare.db.models import Expense, ExpenseDraft, Group, GroupMember


class LedgerStore(Protocol):
    async def get_group(self, group_id: int) -> Optional[Group]: ...

    async def get_group_members(self, group_id: int) -> list[GroupMember]: ...

    async def is_group_member(self, group_id: int, user_id: int) -> bool: ...

    async def get_expenses_in_group(self, group_id: int) -> list[Expense]: ...

    async def sum_owed_by_user_in_group(self, group_id: int, user_id: int) -> Decimal | None: ...

    async def sum_paid_by_user_in_group(self, group_id: int, user_id: int) -> Decimal | None: ...

    async def save_expense_with_splits(self, draft: ExpenseDraft, shares: Mapping[int, Decimal]) -> Expense: ...


class GroupStore(LedgerStore, Protocol):
    async def create_group(self, name: str, description: Optional[str], created_by: int) -> Group: ...

    async def add_member(self, group_id: int, user_id: int) -> bool: ...

    async def remove_member_if_settled(self, group_id: int, user_id: int) -> Decimal: ...

    async def get_expense(self, expense_id: int) -> Optional[Expense]: ...
