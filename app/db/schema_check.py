"""
Create any missing workflow tables in the connected database.

Run once against a fresh database:
  python -m app.db.schema_check
"""
import asyncio
from typing import List

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

import app.core.models  # noqa: F401  (registers every table on Base.metadata)
from app.core.logging import get_logger
from app.db.session import Base, engine

logger = get_logger(__name__)


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """
    Ensure every mapped table exists. Existing tables are left untouched.
    Returns the names of the tables that were created.
    """
    async with db_engine.begin() as conn:
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        missing = [t for t in Base.metadata.sorted_tables if t.name not in existing]
        if missing:
            await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, tables=missing))
    created = [t.name for t in missing]
    if created:
        logger.info("tables_created", tables=created)
    return created


async def main() -> None:
    created = await ensure_tables(engine)
    print("Created tables:", ", ".join(created) if created else "none")


if __name__ == "__main__":
    asyncio.run(main())
