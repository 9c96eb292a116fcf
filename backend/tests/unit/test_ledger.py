"""
Unit Tests: Item Ledger & Schema Bootstrap
══════════════════════════════════════════
Tests for insight_vault/services/ledger.py and db/session.py against a real
SQLite file (aiosqlite) per test.

Coverage:
  ✅ create / get / NotFound
  ✅ update merges only non-None fields and bumps updated_at
  ✅ update rejects unknown or immutable fields
  ✅ insert_if_absent is idempotent on external_id
  ✅ list filters (pillar, topic, status, collection, search) + pagination
  ✅ search matches summary, tags (incl. non-ASCII) and original name
  ✅ search folds accented upper-case; % and _ match literally
  ✅ count_by_status per collection
  ✅ classification log append + filtered listing, newest first
  ✅ init_schema adds missing columns to an existing items table
"""

from __future__ import annotations

import asyncio
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import inspect, text

from insight_vault.core.errors import NotFound
from insight_vault.db.session import build_engine, build_sessionmaker, init_schema
from insight_vault.models.items import Item
from insight_vault.services.ledger import ItemLedger, LogEntryDraft


def _item(**overrides) -> Item:
    values = dict(
        id=uuid.uuid4(),
        source_kind="file",
        original_name="notes.txt",
        media_type="text/plain",
        byte_size=10,
        extracted_text="hello",
        tags=[],
        status="pending",
    )
    values.update(overrides)
    return Item(**values)


@pytest.fixture
def ledger(container):
    return container.ledger


@pytest.mark.unit
class TestItems:

    async def test_create_and_get(self, ledger):
        created = await ledger.create(_item(original_name="Plano.pdf"))
        fetched = await ledger.get(created.id)
        assert fetched.original_name == "Plano.pdf"
        assert fetched.status == "pending"
        assert fetched.created_at is not None

    async def test_get_unknown_raises(self, ledger):
        with pytest.raises(NotFound):
            await ledger.get(uuid.uuid4())

    async def test_update_merges_non_null_fields(self, ledger):
        item = await ledger.create(_item(summary="original", pillar_id="P2"))
        before = item.updated_at
        await asyncio.sleep(0.01)

        updated = await ledger.update(item.id, summary="x", pillar_id=None)

        assert updated.summary == "x"
        assert updated.pillar_id == "P2"
        assert updated.original_name == "notes.txt"
        assert updated.updated_at > before

        reloaded = await ledger.get(item.id)
        assert reloaded.summary == "x"
        assert reloaded.pillar_id == "P2"

    @pytest.mark.parametrize("field", ["created_at", "id", "no_such_column"])
    async def test_update_rejects_fields(self, ledger, field):
        item = await ledger.create(_item())
        with pytest.raises(ValueError):
            await ledger.update(item.id, **{field: "x"})

    async def test_update_unknown_item(self, ledger):
        with pytest.raises(NotFound):
            await ledger.update(uuid.uuid4(), summary="x")

    async def test_insert_if_absent_is_idempotent(self, ledger):
        first = _item(source_kind="video", external_id="dQw4w9WgXcQ")
        second = _item(source_kind="video", external_id="dQw4w9WgXcQ", original_name="other")

        assert await ledger.insert_if_absent(first) is True
        assert await ledger.insert_if_absent(second) is False

        stored = await ledger.get_by_external_id("dQw4w9WgXcQ")
        assert stored.id == first.id
        assert stored.original_name == "notes.txt"
        assert await ledger.count() == 1

    async def test_insert_if_absent_requires_external_id(self, ledger):
        with pytest.raises(ValueError):
            await ledger.insert_if_absent(_item())

    async def test_files_never_collide_on_null_external_id(self, ledger):
        await ledger.create(_item())
        await ledger.create(_item())
        assert await ledger.count() == 2


@pytest.mark.unit
class TestListing:

    @pytest_asyncio.fixture
    async def seeded(self, ledger):
        rows = [
            _item(original_name="Oratória.pdf", pillar_id="P4", topic_id="P4.11", status="classified",
                  summary="Public speaking drills", tags=["oratória", "voz"]),
            _item(original_name="budget.txt", pillar_id="P6", topic_id="P6.05", status="confirmed",
                  summary="Monthly budget review", tags=["finanças"]),
            _item(original_name="Scrum guide", pillar_id="P5", topic_id="P5.04", status="classified",
                  summary="Sprint ceremonies", tags=["scrum"], collection_id="PL-A", source_kind="video_collection_member",
                  external_id="vid00000001"),
            _item(original_name="Retro video", status="needs_api_key", collection_id="PL-A",
                  source_kind="video_collection_member", external_id="vid00000002"),
        ]
        for row in rows:
            await ledger.create(row)
            await asyncio.sleep(0.002)
        return rows

    async def test_newest_first(self, ledger, seeded):
        page = await ledger.list()
        assert page.total == 4
        assert [i.original_name for i in page.items] == [r.original_name for r in reversed(seeded)]

    async def test_filters(self, ledger, seeded):
        assert [i.original_name for i in (await ledger.list(pillar_id="P6")).items] == ["budget.txt"]
        assert [i.original_name for i in (await ledger.list(topic_id="P4.11")).items] == ["Oratória.pdf"]
        assert (await ledger.list(status="classified")).total == 2
        assert (await ledger.list(collection_id="PL-A")).total == 2
        assert (await ledger.list(collection_id="PL-A", status="needs_api_key")).total == 1

    @pytest.mark.parametrize("term,expected", [
        ("sprint", "Scrum guide"),          # summary, case-insensitive
        ("finanças", "budget.txt"),         # non-ASCII tag
        ("voz", "Oratória.pdf"),            # tag
        ("RETRO", "Retro video"),           # original name
        ("FINANÇAS", "budget.txt"),         # accented upper-case vs stored tag
        ("ORATÓRIA", "Oratória.pdf"),       # accented upper-case vs original name
        ("Sprint Ceremonies", "Scrum guide"),
    ])
    async def test_search(self, ledger, seeded, term, expected):
        page = await ledger.list(search=term)
        assert [i.original_name for i in page.items] == [expected]

    @pytest.mark.parametrize("term", ["%", "_", "%%", "\\"])
    async def test_search_wildcards_are_literal(self, ledger, seeded, term):
        assert (await ledger.list(search=term)).total == 0

    async def test_search_matches_literal_percent_and_underscore(self, ledger, seeded):
        await ledger.create(_item(original_name="q3_report.txt", summary="Revenue grew 100% in Q3"))

        assert [i.original_name for i in (await ledger.list(search="100%")).items] == ["q3_report.txt"]
        assert [i.original_name for i in (await ledger.list(search="Q3_")).items] == ["q3_report.txt"]
        assert (await ledger.list(search="%")).total == 1

    async def test_pagination(self, ledger, seeded):
        page = await ledger.list(limit=2, offset=1)
        assert page.total == 4
        assert [i.original_name for i in page.items] == ["Scrum guide", "budget.txt"]

    async def test_count_by_status(self, ledger, seeded):
        assert await ledger.count_by_status("PL-A") == {"classified": 1, "needs_api_key": 1}
        overall = await ledger.count_by_status()
        assert overall == {"classified": 2, "confirmed": 1, "needs_api_key": 1}


@pytest.mark.unit
class TestClassificationLog:

    async def test_append_and_list(self, ledger):
        item_a, item_b = uuid.uuid4(), uuid.uuid4()
        draft = LogEntryDraft(
            prompt_text="Filename: a.txt\n\nContent:\nhello",
            raw_response_text="{}",
            model_identifier="gpt-4o-mini",
            token_count=42,
            succeeded=True,
        )
        await ledger.append_log(draft.for_item(item_a))
        await asyncio.sleep(0.002)
        await ledger.append_log(draft.for_item(item_b))

        all_entries = await ledger.list_logs()
        assert [e.item_id for e in all_entries] == [item_b, item_a]

        only_a = await ledger.list_logs(item_id=item_a)
        assert len(only_a) == 1
        assert only_a[0].token_count == 42
        assert only_a[0].succeeded is True

        assert len(await ledger.list_logs(limit=1)) == 1


@pytest.mark.unit
class TestSchemaEvolution:

    async def test_missing_columns_added(self, settings):
        engine = build_engine(settings)
        old_id = uuid.uuid4()
        try:
            async with engine.begin() as conn:
                await conn.execute(text(
                    "CREATE TABLE items ("
                    " id CHAR(32) PRIMARY KEY,"
                    " source_kind VARCHAR(32) NOT NULL,"
                    " original_name TEXT NOT NULL,"
                    " media_type VARCHAR(128) NOT NULL,"
                    " byte_size BIGINT NOT NULL,"
                    " status VARCHAR(32) NOT NULL,"
                    " created_at DATETIME,"
                    " updated_at DATETIME)"
                ))
                await conn.execute(
                    text(
                        "INSERT INTO items (id, source_kind, original_name, media_type, byte_size, status, "
                        "created_at, updated_at) VALUES (:id, 'file', 'legacy.pdf', 'application/pdf', 5, "
                        "'classified', '2024-01-01 00:00:00.000000', '2024-01-01 00:00:00.000000')"
                    ),
                    {"id": old_id.hex},
                )

            added = await init_schema(engine)

            assert "items.external_id" in added
            assert "items.collection_id" in added
            assert "items.storage_url" in added
            assert "items.id" not in added

            async with engine.connect() as conn:
                columns = await conn.run_sync(
                    lambda sync_conn: {c["name"] for c in inspect(sync_conn).get_columns("items")}
                )
                indexes = await conn.run_sync(
                    lambda sync_conn: {i["name"] for i in inspect(sync_conn).get_indexes("items")}
                )
            assert {"tags", "pillar_id", "suggested_topic", "storage_blob_id"} <= columns
            assert "uq_items_external_id" in indexes

            assert await init_schema(engine) == []

            legacy = await ItemLedger(build_sessionmaker(engine)).get(old_id)
            assert legacy.original_name == "legacy.pdf"
            assert legacy.external_id is None
            assert legacy.tags is None
        finally:
            await engine.dispose()

    async def test_bootstrap_is_idempotent(self, container):
        """Container startup already ran init_schema; a second run adds nothing."""
        assert await init_schema(container.engine) == []
        item = await container.ledger.create(_item(original_name="after.pdf"))
        assert (await container.ledger.get(item.id)).tags == []
