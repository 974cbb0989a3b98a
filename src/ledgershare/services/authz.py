from __future__ import annotations

from typing import Protocol


class MembershipStore(Protocol):
    async def is_group_member(self, group_id: int, user_id: int) -> bool: ...


class AuthorizationError(PermissionError):
    pass


async def is_group_member(store: MembershipStore, user_id: int, group_id: int) -> bool:
    return await store.is_group_member(group_id, user_id)


async def assert_group_member(store: MembershipStore, user_id: int, group_id: int) -> None:
    if not await is_group_member(store, user_id, group_id):
        raise AuthorizationError("Only group members can do this.")
