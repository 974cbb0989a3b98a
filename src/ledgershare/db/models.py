from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


@dataclass(slots=True)
class User:
    id: int
    username: str


@dataclass(slots=True)
class Group:
    id: int
    name: str
    description: Optional[str]
    created_by: int
    created_at: datetime


@dataclass(slots=True)
class GroupMember:
    group_id: int
    user_id: int
    username: str
    joined_at: datetime


@dataclass(slots=True)
class ExpenseSplit:
    id: int
    expense_id: int
    user_id: int
    amount_owed: Decimal


@dataclass(slots=True)
class Expense:
    id: int
    group_id: int
    description: str
    amount: Decimal
    paid_by_user_id: int
    expense_date: date
    created_at: datetime
    splits: list[ExpenseSplit] = field(default_factory=list)


@dataclass(slots=True)
class ExpenseDraft:
    """An expense that has not been written to the ledger yet."""

    group_id: int
    description: str
    amount: Decimal
    paid_by_user_id: int
    expense_date: date
