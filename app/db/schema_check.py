"""
Create any missing application tables. Idempotent.

Usage:
  python -m app.db.schema_check
"""

import asyncio
from typing import List

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

import app.core.models  # noqa: F401  (registers the tables on Base.metadata)
from app.db.session import Base, engine


def _existing_tables(sync_conn) -> List[str]:
    return inspect(sync_conn).get_table_names()


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """Create missing tables in dependency order. Returns the names of the tables created."""
    async with db_engine.begin() as conn:
        existing = set(await conn.run_sync(_existing_tables))
        missing = [t.name for t in Base.metadata.sorted_tables if t.name not in existing]
        await conn.run_sync(Base.metadata.create_all)
    return missing


async def main() -> None:
    missing = await ensure_tables(engine)
    if missing:
        print("Created missing tables: " + ", ".join(missing))
    else:
        print("All application tables already exist in the database.")


if __name__ == "__main__":
    asyncio.run(main())
