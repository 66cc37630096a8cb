from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from jobagent.config import get_settings
from jobagent.db import models  # noqa: F401
from jobagent.db.base import Base

logger = logging.getLogger(__name__)


def ensure_data_directories() -> None:
    get_settings().data_dir.mkdir(parents=True, exist_ok=True)


async def init_database(engine: AsyncEngine | None = None) -> dict[str, list[str]]:
    if engine is None:
        from jobagent.db.session import engine as default_engine

        engine = default_engine

    ensure_data_directories()
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)

    tables = sorted(Base.metadata.tables)
    logger.info("Database ready tables=%s", tables)
    return {"tables": tables}
