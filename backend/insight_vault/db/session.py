"""
Database engine, session factory and schema bootstrap.

Flow:
  1. build_engine(settings) creates the async engine (aiosqlite by default).
     On SQLite a Unicode casefold() SQL function is registered per
     connection for case-insensitive search.
  2. build_sessionmaker(engine) returns the factory the ItemLedger uses; every
     ledger call opens its own session + transaction.
  3. init_schema(engine) runs at start-up:
       a. create_all for missing tables
       b. ALTER TABLE … ADD COLUMN for model columns missing from an
          existing table (additive evolution; old rows keep NULL)
       c. create any missing index

There is no module-level engine: the application container owns it and
disposes it on shutdown.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import event, inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from insight_vault.core.config import Settings
from insight_vault.models.items import Base

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine / sessions
# ---------------------------------------------------------------------------

def _casefold(value: str | None) -> str | None:
    return value.casefold() if value else value


def _register_sqlite_functions(dbapi_conn, connection_record) -> None:
    """SQLite lower() only folds ASCII; search goes through a Unicode casefold()."""
    dbapi_conn.create_function("casefold", 1, _casefold, deterministic=True)


def build_engine(settings: Settings) -> AsyncEngine:
    kwargs: dict = {
        "echo":          settings.db_echo_sql,   # log SQL in dev; disable in prod
        "pool_pre_ping": True,                   # detect stale connections before use
        # keep non-ASCII tags searchable over the JSON text
        "json_serializer": lambda obj: json.dumps(obj, ensure_ascii=False),
    }
    is_sqlite = settings.database_url.startswith("sqlite")
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_recycle"] = 3600

    engine = create_async_engine(settings.database_url, **kwargs)
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _register_sqlite_functions)
    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps ORM objects usable after commit
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ---------------------------------------------------------------------------
# Schema bootstrap
# ---------------------------------------------------------------------------

def _evolve_schema(conn: Connection) -> list[str]:
    """Add missing columns and indexes; return the names of what was added."""
    inspector = inspect(conn)
    preparer = conn.dialect.identifier_preparer
    added: list[str] = []

    for table in Base.metadata.sorted_tables:
        existing = {c["name"] for c in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in existing:
                continue
            col_type = column.type.compile(dialect=conn.dialect)
            conn.execute(
                text(
                    f"ALTER TABLE {preparer.quote(table.name)} "
                    f"ADD COLUMN {preparer.quote(column.name)} {col_type}"
                )
            )
            added.append(f"{table.name}.{column.name}")

        for index in table.indexes:
            index.create(conn, checkfirst=True)

    return added


async def init_schema(engine: AsyncEngine) -> list[str]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        added = await conn.run_sync(_evolve_schema)

    if added:
        logger.info("Schema evolved | added_columns=%s", ",".join(added))
    else:
        logger.debug("Schema up to date")
    return added


# ---------------------------------------------------------------------------
# Health check helper
# ---------------------------------------------------------------------------

async def check_db_health(engine: AsyncEngine) -> dict:
    """Ping the database; used by /health endpoint."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
