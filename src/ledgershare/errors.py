from __future__ import annotations


class LedgerError(Exception):
    pass


class GroupNotFound(LedgerError, LookupError):
    def __init__(self, group_id: int) -> None:
        super().__init__(f"Group {group_id} not found")
        self.group_id = group_id


class InvalidInput(LedgerError, ValueError):
    pass


class StorageFailure(LedgerError, RuntimeError):
    pass
