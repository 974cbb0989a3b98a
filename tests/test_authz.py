import pytest

from ledgershare.services.authz import AuthorizationError, assert_group_member, is_group_member


class StubStore:
    def __init__(self, members: dict[int, set[int]]) -> None:
        self.members = members

    async def is_group_member(self, group_id: int, user_id: int) -> bool:
        return user_id in self.members.get(group_id, set())


@pytest.mark.asyncio
async def test_is_group_member():
    store = StubStore({1: {42, 100}})
    assert await is_group_member(store, 42, 1) is True
    assert await is_group_member(store, 42, 2) is False


@pytest.mark.asyncio
async def test_assert_group_member():
    store = StubStore({1: {10, 20}})
    await assert_group_member(store, 20, 1)


@pytest.mark.asyncio
async def test_assert_group_member_denied():
    store = StubStore({1: {10}})
    with pytest.raises(AuthorizationError):
        await assert_group_member(store, 99, 1)
