"""Create the fees schema and any missing tables. Run with: python -m feeledger.db.schema"""

import asyncio
import logging

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine

import feeledger.core.models  # noqa: F401  registers tables on Base.metadata
from feeledger.core.config import settings
from feeledger.core.logging import configure_logging
from feeledger.db.session import FEES_SCHEMA, Base, engine

logger = logging.getLogger(__name__)


def _missing_tables(sync_conn) -> list:
    existing = set(inspect(sync_conn).get_table_names(schema=FEES_SCHEMA))
    return [t.name for t in Base.metadata.sorted_tables if t.name not in existing]


async def ensure_tables(db_engine: AsyncEngine) -> list:
    """Create missing tables in the fees schema. Existing tables are left alone."""
    async with db_engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {FEES_SCHEMA}"))
        missing = await conn.run_sync(_missing_tables)
        await conn.run_sync(Base.metadata.create_all)

    if missing:
        logger.info("Created missing tables: %s", ", ".join(missing))
    else:
        logger.info("All fee ledger tables already exist in the database.")
    return missing


async def main() -> None:
    configure_logging(settings.log_level)
    await ensure_tables(engine)


if __name__ == "__main__":
    asyncio.run(main())
