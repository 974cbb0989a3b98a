from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Iterable, Iterator, Mapping, Optional

import asyncpg

from ledgershare.db.models import Expense, ExpenseDraft, ExpenseSplit, Group, GroupMember, User
from ledgershare.errors import GroupNotFound, InvalidInput, StorageFailure
from ledgershare.logging import get_logger, sql_logger


@contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        raise StorageFailure(str(exc)) from exc


class Transaction:
    """Query helpers bound to a single connection inside an open transaction."""

    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        sql_logger.info("sql.tx.fetch", query=query, args=args)
        with _storage_errors():
            return await self._conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        sql_logger.info("sql.tx.fetchrow", query=query, args=args)
        with _storage_errors():
            return await self._conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        sql_logger.info("sql.tx.fetchval", query=query, args=args)
        with _storage_errors():
            return await self._conn.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        sql_logger.info("sql.tx.execute", query=query, args=args)
        with _storage_errors():
            return await self._conn.execute(query, *args)


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme
            dsn = self._dsn.replace("+asyncpg", "")
            with _storage_errors():
                self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetch", query=query, args=args)
        with _storage_errors():
            return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchrow", query=query, args=args)
        with _storage_errors():
            return await self._pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchval", query=query, args=args)
        with _storage_errors():
            return await self._pool.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.execute", query=query, args=args)
        with _storage_errors():
            return await self._pool.execute(query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        await self._ensure_pool()
        assert self._pool
        with _storage_errors():
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    yield Transaction(conn)

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


async def _lock_group(tx: Transaction, group_id: int, mode: str) -> None:
    # expense writes share the lock, membership removal takes it exclusively
    locked = await tx.fetchval(f"SELECT id FROM groups WHERE id = $1 {mode}", group_id)
    if locked is None:
        raise GroupNotFound(group_id)


def _to_user(row: Mapping[str, Any]) -> User:
    return User(id=row["id"], username=row["username"])


def _to_group(row: Mapping[str, Any]) -> Group:
    return Group(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


def _to_member(row: Mapping[str, Any]) -> GroupMember:
    return GroupMember(
        group_id=row["group_id"],
        user_id=row["user_id"],
        username=row["username"],
        joined_at=row["joined_at"],
    )


def _to_split(row: Mapping[str, Any]) -> ExpenseSplit:
    return ExpenseSplit(
        id=row["id"],
        expense_id=row["expense_id"],
        user_id=row["user_id"],
        amount_owed=row["amount_owed"],
    )


def _to_expense(row: Mapping[str, Any], splits: Iterable[ExpenseSplit] = ()) -> Expense:
    return Expense(
        id=row["id"],
        group_id=row["group_id"],
        description=row["description"],
        amount=row["amount"],
        paid_by_user_id=row["paid_by_user_id"],
        expense_date=row["expense_date"],
        created_at=row["created_at"],
        splits=list(splits),
    )


class LedgerRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def ensure_user(self, username: str) -> User:
        row = await self.db.fetchrow(
            """
            INSERT INTO users (username)
            VALUES ($1)
            ON CONFLICT (username) DO UPDATE SET username = EXCLUDED.username
            RETURNING *
            """,
            username,
        )
        assert row is not None
        return _to_user(row)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        row = await self.db.fetchrow("SELECT * FROM users WHERE username = $1", username)
        return _to_user(row) if row else None

    async def create_group(self, name: str, description: Optional[str], created_by: int) -> Group:
        async with self.db.transaction() as tx:
            row = await tx.fetchrow(
                """
                INSERT INTO groups (name, description, created_by)
                VALUES ($1, $2, $3)
                RETURNING *
                """,
                name,
                description,
                created_by,
            )
            assert row is not None
            await tx.execute(
                "INSERT INTO group_members (group_id, user_id) VALUES ($1, $2)",
                row["id"],
                created_by,
            )
        return _to_group(row)

    async def get_group(self, group_id: int) -> Optional[Group]:
        row = await self.db.fetchrow("SELECT * FROM groups WHERE id = $1", group_id)
        return _to_group(row) if row else None

    async def list_user_groups(self, user_id: int) -> list[Group]:
        rows = await self.db.fetch(
            """
            SELECT g.*
            FROM groups g
            JOIN group_members gm ON gm.group_id = g.id
            WHERE gm.user_id = $1
            ORDER BY g.created_at, g.id
            """,
            user_id,
        )
        return [_to_group(row) for row in rows]

    async def list_groups_created_by(self, user_id: int) -> list[Group]:
        rows = await self.db.fetch(
            "SELECT * FROM groups WHERE created_by = $1 ORDER BY created_at, id",
            user_id,
        )
        return [_to_group(row) for row in rows]

    async def get_group_members(self, group_id: int) -> list[GroupMember]:
        rows = await self.db.fetch(
            """
            SELECT gm.group_id, gm.user_id, gm.joined_at, u.username
            FROM group_members gm
            JOIN users u ON u.id = gm.user_id
            WHERE gm.group_id = $1
            ORDER BY gm.joined_at, gm.id
            """,
            group_id,
        )
        return [_to_member(row) for row in rows]

    async def is_group_member(self, group_id: int, user_id: int) -> bool:
        found = await self.db.fetchval(
            "SELECT 1 FROM group_members WHERE group_id = $1 AND user_id = $2",
            group_id,
            user_id,
        )
        return found is not None

    async def add_member(self, group_id: int, user_id: int) -> bool:
        row = await self.db.fetchrow(
            """
            INSERT INTO group_members (group_id, user_id)
            VALUES ($1, $2)
            ON CONFLICT (group_id, user_id) DO NOTHING
            RETURNING user_id
            """,
            group_id,
            user_id,
        )
        return row is not None

    async def remove_member_if_settled(self, group_id: int, user_id: int) -> Decimal:
        """Delete the membership only when the user's balance is zero.

        Returns the balance found; the row is left in place when it is not
        zero. The group row is locked so no expense can land in between.
        """
        async with self.db.transaction() as tx:
            await _lock_group(tx, group_id, "FOR UPDATE")
            outstanding = await tx.fetchval(
                """
                SELECT
                    COALESCE((SELECT SUM(amount) FROM expenses
                              WHERE group_id = $1 AND paid_by_user_id = $2), 0)
                  - COALESCE((SELECT SUM(es.amount_owed)
                              FROM expense_splits es
                              JOIN expenses e ON e.id = es.expense_id
                              WHERE e.group_id = $1 AND es.user_id = $2), 0)
                """,
                group_id,
                user_id,
            )
            if outstanding != 0:
                return outstanding
            await tx.execute(
                "DELETE FROM group_members WHERE group_id = $1 AND user_id = $2",
                group_id,
                user_id,
            )
        return outstanding

    async def get_expenses_in_group(self, group_id: int) -> list[Expense]:
        rows = await self.db.fetch(
            """
            SELECT *
            FROM expenses
            WHERE group_id = $1
            ORDER BY expense_date DESC, id DESC
            """,
            group_id,
        )
        if not rows:
            return []
        split_rows = await self.db.fetch(
            "SELECT * FROM expense_splits WHERE expense_id = ANY($1::bigint[]) ORDER BY id",
            [row["id"] for row in rows],
        )
        by_expense: dict[int, list[ExpenseSplit]] = {}
        for split_row in split_rows:
            by_expense.setdefault(split_row["expense_id"], []).append(_to_split(split_row))
        return [_to_expense(row, by_expense.get(row["id"], [])) for row in rows]

    async def get_expense(self, expense_id: int) -> Optional[Expense]:
        row = await self.db.fetchrow("SELECT * FROM expenses WHERE id = $1", expense_id)
        if row is None:
            return None
        return _to_expense(row, await self.get_expense_splits(expense_id))

    async def get_expense_splits(self, expense_id: int) -> list[ExpenseSplit]:
        rows = await self.db.fetch(
            "SELECT * FROM expense_splits WHERE expense_id = $1 ORDER BY id",
            expense_id,
        )
        return [_to_split(row) for row in rows]

    async def sum_owed_by_user_in_group(self, group_id: int, user_id: int) -> Decimal | None:
        return await self.db.fetchval(
            """
            SELECT SUM(es.amount_owed)
            FROM expense_splits es
            JOIN expenses e ON e.id = es.expense_id
            WHERE e.group_id = $1 AND es.user_id = $2
            """,
            group_id,
            user_id,
        )

    async def sum_paid_by_user_in_group(self, group_id: int, user_id: int) -> Decimal | None:
        return await self.db.fetchval(
            "SELECT SUM(amount) FROM expenses WHERE group_id = $1 AND paid_by_user_id = $2",
            group_id,
            user_id,
        )

    async def save_expense_with_splits(self, draft: ExpenseDraft, shares: Mapping[int, Decimal]) -> Expense:
        async with self.db.transaction() as tx:
            await _lock_group(tx, draft.group_id, "FOR SHARE")
            involved = {draft.paid_by_user_id, *shares}
            present = await tx.fetchval(
                "SELECT COUNT(*) FROM group_members WHERE group_id = $1 AND user_id = ANY($2::bigint[])",
                draft.group_id,
                sorted(involved),
            )
            if present != len(involved):
                raise InvalidInput(f"Not every user is a member of group {draft.group_id}")
            row = await tx.fetchrow(
                """
                INSERT INTO expenses (group_id, description, amount, paid_by_user_id, expense_date)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING *
                """,
                draft.group_id,
                draft.description,
                draft.amount,
                draft.paid_by_user_id,
                draft.expense_date,
            )
            assert row is not None
            splits: list[ExpenseSplit] = []
            for user_id, amount_owed in shares.items():
                split_row = await tx.fetchrow(
                    """
                    INSERT INTO expense_splits (expense_id, user_id, amount_owed)
                    VALUES ($1, $2, $3)
                    RETURNING *
                    """,
                    row["id"],
                    user_id,
                    amount_owed,
                )
                assert split_row is not None
                splits.append(_to_split(split_row))
        return _to_expense(row, splits)
