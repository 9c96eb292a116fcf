"""
Item Ledger

Persistence for items and their classification audit trail.

Every public call opens its own session and transaction and commits before
returning, so a write is durable as soon as the call completes. Callers never
see a session.

Update semantics:
    update(id, **fields) applies only fields whose value is not None, plus
    updated_at. Unknown field names raise ValueError. This mirrors a
    COALESCE(new, old) merge: clearing a column is not possible through
    update(), which keeps operator edits from wiping classifier output.

Idempotent registration:
    insert_if_absent(item) is INSERT … ON CONFLICT (external_id) DO NOTHING
    on SQLite and PostgreSQL; it reports whether a row was inserted.

The classification log is append-only: there is no update or delete for it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from insight_vault.core.errors import NotFound
from insight_vault.models.items import ClassificationLog, Item, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_LOG_LIMIT = 100

_IMMUTABLE_FIELDS = {"id", "created_at", "updated_at"}
_ITEM_FIELDS = {c.key for c in Item.__table__.columns}


@dataclass(frozen=True)
class ItemPage:
    total: int
    items: list[Item]


@dataclass(frozen=True)
class LogEntryDraft:
    """Audit record produced by the classifier; persisted by append_log()."""
    prompt_text:       str
    raw_response_text: str
    model_identifier:  str
    token_count:       int
    succeeded:         bool

    def for_item(self, item_id: UUID) -> ClassificationLog:
        return ClassificationLog(
            item_id=item_id,
            prompt_text=self.prompt_text,
            raw_response_text=self.raw_response_text,
            model_identifier=self.model_identifier,
            token_count=self.token_count,
            succeeded=self.succeeded,
        )


def _insert_ignore(dialect_name: str, values: dict[str, Any]):
    """Dialect-specific INSERT … ON CONFLICT DO NOTHING on external_id."""
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    elif dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    else:
        raise NotImplementedError(f"insert_if_absent is not supported on '{dialect_name}'")
    return (
        dialect_insert(Item)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["external_id"])
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search_condition(dialect_name: str, term: str):
    """
    Case-insensitive substring match over summary, tags and original name.

    SQLite uses the casefold() function registered in db/session.py, since its
    own lower() leaves accented letters alone; other dialects use ILIKE.
    """
    columns = (Item.summary, cast(Item.tags, String), Item.original_name)
    if dialect_name == "sqlite":
        pattern = f"%{_escape_like(term.casefold())}%"
        return or_(*(func.casefold(col).like(pattern, escape="\\") for col in columns))
    pattern = f"%{_escape_like(term)}%"
    return or_(*(col.ilike(pattern, escape="\\") for col in columns))


class ItemLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def create(self, item: Item) -> Item:
        now = utcnow()
        item.created_at = item.created_at or now
        item.updated_at = item.updated_at or now
        async with self._session_factory() as session:
            async with session.begin():
                session.add(item)
        logger.debug("Item created | id=%s status=%s", item.id, item.status)
        return item

    async def insert_if_absent(self, item: Item) -> bool:
        """Insert unless an item with the same external_id exists."""
        if not item.external_id:
            raise ValueError("insert_if_absent requires an external_id")

        now = utcnow()
        values = {
            c.key: getattr(item, c.key)
            for c in Item.__table__.columns
            if getattr(item, c.key) is not None
        }
        values.setdefault("id", item.id or uuid.uuid4())
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)
        values.setdefault("tags", [])
        item.id = values["id"]

        async with self._session_factory() as session:
            async with session.begin():
                dialect = session.bind.dialect.name
                result = await session.execute(_insert_ignore(dialect, values))
                inserted = result.rowcount == 1

        if not inserted:
            logger.info("Duplicate external id ignored | external_id=%s", item.external_id)
        return inserted

    async def update(self, item_id: UUID, **fields: Any) -> Item:
        unknown = set(fields) - (_ITEM_FIELDS - _IMMUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown or immutable item fields: {sorted(unknown)}")

        changes = {k: v for k, v in fields.items() if v is not None}

        async with self._session_factory() as session:
            async with session.begin():
                item = await session.get(Item, item_id)
                if item is None:
                    raise NotFound("item", item_id)
                for key, value in changes.items():
                    setattr(item, key, value)
                item.updated_at = utcnow()
        return item

    async def get(self, item_id: UUID) -> Item:
        async with self._session_factory() as session:
            item = await session.get(Item, item_id)
        if item is None:
            raise NotFound("item", item_id)
        return item

    async def get_by_external_id(self, external_id: str) -> Item | None:
        async with self._session_factory() as session:
            result = await session.execute(select(Item).where(Item.external_id == external_id))
            return result.scalars().first()

    async def list(
        self,
        pillar_id:     str | None = None,
        topic_id:      str | None = None,
        status:        str | None = None,
        search:        str | None = None,
        collection_id: str | None = None,
        limit:         int = DEFAULT_PAGE_SIZE,
        offset:        int = 0,
    ) -> ItemPage:
        conditions = []
        if pillar_id:
            conditions.append(Item.pillar_id == pillar_id)
        if topic_id:
            conditions.append(Item.topic_id == topic_id)
        if status:
            conditions.append(Item.status == str(getattr(status, "value", status)))
        if collection_id:
            conditions.append(Item.collection_id == collection_id)
        term = (search or "").strip()

        async with self._session_factory() as session:
            if term:
                conditions.append(_search_condition(session.bind.dialect.name, term))
            total = await session.scalar(
                select(func.count()).select_from(Item).where(*conditions)
            )
            result = await session.execute(
                select(Item)
                .where(*conditions)
                .order_by(Item.created_at.desc(), Item.id.desc())
                .limit(limit)
                .offset(offset)
            )
            items = list(result.scalars().all())

        return ItemPage(total=int(total or 0), items=items)

    async def count(self) -> int:
        async with self._session_factory() as session:
            return int(await session.scalar(select(func.count()).select_from(Item)) or 0)

    async def count_by_status(self, collection_id: str | None = None) -> dict[str, int]:
        stmt = select(Item.status, func.count()).group_by(Item.status)
        if collection_id:
            stmt = stmt.where(Item.collection_id == collection_id)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return {status: int(n) for status, n in rows}

    # ------------------------------------------------------------------
    # Classification log (append-only)
    # ------------------------------------------------------------------

    async def append_log(self, entry: ClassificationLog) -> ClassificationLog:
        entry.created_at = entry.created_at or utcnow()
        async with self._session_factory() as session:
            async with session.begin():
                session.add(entry)
        logger.debug("Classification logged | item=%s ok=%s", entry.item_id, entry.succeeded)
        return entry

    async def list_logs(
        self,
        item_id: UUID | None = None,
        limit:   int = DEFAULT_LOG_LIMIT,
    ) -> list[ClassificationLog]:
        stmt = select(ClassificationLog)
        if item_id is not None:
            stmt = stmt.where(ClassificationLog.item_id == item_id)
        stmt = stmt.order_by(ClassificationLog.created_at.desc()).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
