from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from ledgershare.config import Settings, get_settings
from ledgershare.db.repo import Database, LedgerRepository
from ledgershare.logging import configure_logging, get_logger


@asynccontextmanager
async def open_ledger(settings: Optional[Settings] = None) -> AsyncIterator[LedgerRepository]:
    """Connect to the ledger database and hand out a repository for the services."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    log = get_logger(__name__)

    db = Database(settings.database_url)
    await db.connect()
    log.info("ledger.open")
    try:
        yield LedgerRepository(db)
    finally:
        await db.close()
        log.info("ledger.close")
