from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from itertools import count
from typing import Mapping, Optional

import pytest

from ledgershare.db.models import Expense, ExpenseDraft, ExpenseSplit, Group, GroupMember
from ledgershare.errors import InvalidInput, StorageFailure


class InMemoryStore:
    def __init__(self) -> None:
        self.groups: dict[int, Group] = {}
        self.members: dict[int, list[GroupMember]] = {}
        self.expenses: list[Expense] = []
        self.fail_writes = False
        self._ids = count(1)

    def add_group(self, name: str, members: Mapping[int, str]) -> Group:
        group = Group(
            id=next(self._ids),
            name=name,
            description=None,
            created_by=next(iter(members)),
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        self.groups[group.id] = group
        self.members[group.id] = [
            GroupMember(group_id=group.id, user_id=user_id, username=username, joined_at=group.created_at)
            for user_id, username in members.items()
        ]
        return group

    async def get_group(self, group_id: int) -> Optional[Group]:
        return self.groups.get(group_id)

    async def get_group_members(self, group_id: int) -> list[GroupMember]:
        return list(self.members.get(group_id, []))

    async def is_group_member(self, group_id: int, user_id: int) -> bool:
        return any(member.user_id == user_id for member in self.members.get(group_id, []))

    async def get_expenses_in_group(self, group_id: int) -> list[Expense]:
        return [expense for expense in self.expenses if expense.group_id == group_id]

    async def get_expense(self, expense_id: int) -> Optional[Expense]:
        return next((expense for expense in self.expenses if expense.id == expense_id), None)

    async def sum_owed_by_user_in_group(self, group_id: int, user_id: int) -> Decimal | None:
        owed = [
            split.amount_owed
            for expense in self.expenses
            if expense.group_id == group_id
            for split in expense.splits
            if split.user_id == user_id
        ]
        return sum(owed, Decimal("0")) if owed else None

    async def sum_paid_by_user_in_group(self, group_id: int, user_id: int) -> Decimal | None:
        paid = [
            expense.amount
            for expense in self.expenses
            if expense.group_id == group_id and expense.paid_by_user_id == user_id
        ]
        return sum(paid, Decimal("0")) if paid else None

    async def save_expense_with_splits(self, draft: ExpenseDraft, shares: Mapping[int, Decimal]) -> Expense:
        if self.fail_writes:
            raise StorageFailure("connection lost")
        for user_id in {draft.paid_by_user_id, *shares}:
            if not await self.is_group_member(draft.group_id, user_id):
                raise InvalidInput(f"User {user_id} is not a member of group {draft.group_id}")
        expense_id = next(self._ids)
        expense = Expense(
            id=expense_id,
            group_id=draft.group_id,
            description=draft.description,
            amount=draft.amount,
            paid_by_user_id=draft.paid_by_user_id,
            expense_date=draft.expense_date,
            created_at=datetime.now(timezone.utc),
            splits=[
                ExpenseSplit(id=next(self._ids), expense_id=expense_id, user_id=user_id, amount_owed=amount)
                for user_id, amount in shares.items()
            ],
        )
        self.expenses.append(expense)
        return expense

    async def create_group(self, name: str, description: Optional[str], created_by: int) -> Group:
        group = self.add_group(name, {created_by: f"user{created_by}"})
        group.description = description
        return group

    async def add_member(self, group_id: int, user_id: int) -> bool:
        if await self.is_group_member(group_id, user_id):
            return False
        self.members[group_id].append(
            GroupMember(
                group_id=group_id,
                user_id=user_id,
                username=f"user{user_id}",
                joined_at=datetime.now(timezone.utc),
            )
        )
        return True

    async def remove_member_if_settled(self, group_id: int, user_id: int) -> Decimal:
        paid = await self.sum_paid_by_user_in_group(group_id, user_id) or Decimal("0")
        owed = await self.sum_owed_by_user_in_group(group_id, user_id) or Decimal("0")
        outstanding = paid - owed
        if outstanding == 0:
            self.members[group_id] = [m for m in self.members[group_id] if m.user_id != user_id]
        return outstanding


ALICE, BOB, CAROL = 1, 2, 3


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def trio(store: InMemoryStore) -> Group:
    return store.add_group("Flat", {ALICE: "alice", BOB: "bob", CAROL: "carol"})


@pytest.fixture
def on_day() -> date:
    return date(2024, 5, 10)
