"""
Integration Tests: /api/v1 item, collection and taxonomy routes
═══════════════════════════════════════════════════════════════
These tests exercise the FULL FastAPI routing stack:
  - Multipart form parsing and JSON bodies
  - Dependency injection through app.state.container
  - Status codes, structured error bodies, response headers

What is mocked vs real
──────────────────────
  ✅ Real: FastAPI routing, Pydantic schemas, IngestionService, BatchOrchestrator,
           SQLite ledger (tmp file), local storage (tmp dir)
  🔲 Fake: reasoning service (scripted JSON replies)
  🔲 Fake: YouTube metadata source (in-memory videos and playlists)

How to run
──────────
  pytest -m integration backend/tests/integration/test_items_api.py -v
"""

from __future__ import annotations

import uuid

import pytest

API = "/api/v1"


async def _upload(client, content: bytes, filename: str = "notes.txt", content_type: str = "text/plain"):
    return await client.post(f"{API}/items/upload", files={"file": (filename, content, content_type)})


# ─────────────────────────────────────────────────────────────────────────────
# Upload
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestUpload:

    async def test_upload_returns_classified_item(self, async_client, sample_txt_bytes):
        resp = await _upload(async_client, sample_txt_bytes)

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "classified"
        assert body["source_kind"] == "file"
        assert body["pillar_id"] == "P4"
        assert body["topic_name"] == "Comunicação"
        assert body["storage_backend"] == "local"
        assert body["byte_size"] == len(sample_txt_bytes)
        assert "X-Request-ID" in resp.headers

    async def test_unsupported_type(self, async_client):
        resp = await _upload(async_client, b"MZ\x90\x00", filename="tool.exe", content_type="application/octet-stream")

        assert resp.status_code == 400
        body = resp.json()
        assert body["error_code"] == "VALIDATION_FAILED"
        assert ".pdf" in body["context"]["allowed"]
        assert body["request_id"] == resp.headers["X-Request-ID"]

    async def test_missing_file_field(self, async_client):
        resp = await async_client.post(f"{API}/items/upload", data={"other": "x"})
        assert resp.status_code == 422
        assert resp.json()["error_code"] == "VALIDATION_FAILED"

    async def test_classification_failure_reports_item(self, async_client, fake_reasoning, sample_txt_bytes):
        fake_reasoning.replies = ["this is not json"]

        resp = await _upload(async_client, sample_txt_bytes)

        assert resp.status_code == 502
        body = resp.json()
        assert body["error_code"] == "CLASSIFICATION_FAILED"
        item_id = body["context"]["item_id"]

        item = await async_client.get(f"{API}/items/{item_id}")
        assert item.json()["status"] == "error"

        logs = await async_client.get(f"{API}/logs", params={"item_id": item_id})
        assert [e["succeeded"] for e in logs.json()] == [False]

    async def test_request_id_echoed(self, async_client):
        resp = await async_client.get(f"{API}/health", headers={"X-Request-ID": "trace-123"})
        assert resp.headers["X-Request-ID"] == "trace-123"


# ─────────────────────────────────────────────────────────────────────────────
# Reads
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestItemReads:

    async def test_unknown_item(self, async_client):
        resp = await async_client.get(f"{API}/items/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "NOT_FOUND"

    async def test_malformed_item_id(self, async_client):
        resp = await async_client.get(f"{API}/items/not-a-uuid")
        assert resp.status_code == 422

    async def test_list_with_filters(self, async_client, sample_txt_bytes, sample_png_bytes):
        await _upload(async_client, sample_txt_bytes)
        await _upload(async_client, sample_png_bytes, filename="board.png", content_type="image/png")

        everything = (await async_client.get(f"{API}/items")).json()
        assert everything["total"] == 2
        assert everything["items"][0]["original_name"] == "board.png"

        by_name = (await async_client.get(f"{API}/items", params={"q": "board"})).json()
        assert [i["original_name"] for i in by_name["items"]] == ["board.png"]

        by_status = (await async_client.get(f"{API}/items", params={"status": "confirmed"})).json()
        assert by_status["total"] == 0

        paged = (await async_client.get(f"{API}/items", params={"limit": 1, "offset": 1})).json()
        assert (paged["limit"], paged["offset"], len(paged["items"])) == (1, 1, 1)

    async def test_list_rejects_unknown_status(self, async_client):
        resp = await async_client.get(f"{API}/items", params={"status": "archived"})
        assert resp.status_code == 422

    async def test_download_original(self, async_client, sample_txt_bytes):
        item = (await _upload(async_client, sample_txt_bytes, filename="final report.txt")).json()

        resp = await async_client.get(f"{API}/items/{item['id']}/original")

        assert resp.status_code == 200
        assert resp.content == sample_txt_bytes
        assert resp.headers["content-type"].startswith("text/plain")
        assert "final%20report.txt" in resp.headers["content-disposition"]


# ─────────────────────────────────────────────────────────────────────────────
# Operator actions
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestOperatorRoutes:

    async def test_confirm_without_body(self, async_client, sample_txt_bytes):
        item = (await _upload(async_client, sample_txt_bytes)).json()

        resp = await async_client.patch(f"{API}/items/{item['id']}/confirm")

        assert resp.status_code == 200
        assert resp.json()["status"] == "confirmed"

    async def test_confirm_with_overrides(self, async_client, sample_txt_bytes):
        item = (await _upload(async_client, sample_txt_bytes)).json()

        resp = await async_client.patch(
            f"{API}/items/{item['id']}/confirm",
            json={"pillar_id": "P5", "topic_id": "P5.04", "tags": ["Scrum", "Agile"]},
        )

        body = resp.json()
        assert (body["pillar_id"], body["topic_name"]) == ("P5", "Scrum")
        assert body["tags"] == ["scrum", "agile"]

    async def test_confirm_pillar_without_topic(self, async_client, sample_txt_bytes):
        item = (await _upload(async_client, sample_txt_bytes)).json()
        resp = await async_client.patch(f"{API}/items/{item['id']}/confirm", json={"pillar_id": "P5"})
        assert resp.status_code == 422

    async def test_confirm_needs_api_key_conflict(self, async_client, fake_reasoning, sample_txt_bytes):
        fake_reasoning._configured = False
        item = (await _upload(async_client, sample_txt_bytes)).json()
        assert item["status"] == "needs_api_key"

        resp = await async_client.patch(f"{API}/items/{item['id']}/confirm")

        assert resp.status_code == 409
        assert resp.json()["error_code"] == "INVALID_TRANSITION"

    async def test_reclassify_by_name(self, async_client, sample_txt_bytes):
        item = (await _upload(async_client, sample_txt_bytes)).json()

        resp = await async_client.patch(
            f"{API}/items/{item['id']}/reclassify",
            json={"pillar_id": "P6", "topic_name": "EMPREENDEDORISMO"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert (body["topic_id"], body["status"]) == ("P6.09", "confirmed")

    async def test_reclassify_unknown_topic(self, async_client, sample_txt_bytes):
        item = (await _upload(async_client, sample_txt_bytes)).json()
        resp = await async_client.patch(
            f"{API}/items/{item['id']}/reclassify",
            json={"pillar_id": "P6", "topic_id": "P1.01"},
        )
        assert resp.status_code == 400


# ─────────────────────────────────────────────────────────────────────────────
# Videos and collections
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestVideoRoutes:

    async def test_submit_video(self, async_client, fake_videos, make_video):
        fake_videos.videos["dQw4w9WgXcQ"] = make_video("dQw4w9WgXcQ", title="Negotiation basics")

        resp = await async_client.post(f"{API}/items/video", json={"url": "https://youtu.be/dQw4w9WgXcQ"})

        assert resp.status_code == 201
        body = resp.json()
        assert body["source_kind"] == "video"
        assert body["external_id"] == "dQw4w9WgXcQ"
        assert body["original_name"] == "Negotiation basics"

        original = await async_client.get(f"{API}/items/{body['id']}/original")
        assert original.status_code == 404

    async def test_invalid_video_url(self, async_client):
        resp = await async_client.post(f"{API}/items/video", json={"url": "https://vimeo.com/1"})
        assert resp.status_code == 400

    async def test_video_source_failure(self, async_client, fake_videos):
        fake_videos.failing.add("dQw4w9WgXcQ")
        resp = await async_client.post(f"{API}/items/video", json={"url": "dQw4w9WgXcQ"})
        assert resp.status_code == 502
        assert resp.json()["error_code"] == "UPSTREAM_UNAVAILABLE"

    async def test_collection_accepted_then_progress(self, async_client, container, fake_videos, make_video):
        playlist = "PLvault0000000001"
        fake_videos.add_playlist(playlist, [[make_video(f"vid{n:08d}") for n in range(1, 4)]])

        resp = await async_client.post(f"{API}/collections", json={"url": playlist})

        assert resp.status_code == 202
        assert resp.json() == {"collection_id": playlist, "accepted": 3}
        assert resp.headers["location"] == f"/api/v1/collections/{playlist}/progress"

        await container.publisher.drain()

        progress = (await async_client.get(resp.headers["location"])).json()
        assert progress == {"collection_id": playlist, "total": 3, "by_status": {"classified": 3}}

        listed = (await async_client.get(f"{API}/items", params={"collection": playlist})).json()
        assert listed["total"] == 3


# ─────────────────────────────────────────────────────────────────────────────
# Taxonomy and health
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestTaxonomyAndHealth:

    async def test_pillars(self, async_client):
        pillars = (await async_client.get(f"{API}/pillars")).json()
        assert [p["id"] for p in pillars] == [f"P{n}" for n in range(1, 9)]
        assert pillars[5]["topic_count"] == 9

    async def test_topics(self, async_client):
        topics = (await async_client.get(f"{API}/pillars/P4/topics")).json()
        assert topics[4] == {"id": "P4.05", "pillar_id": "P4", "name": "Comunicação"}

    async def test_topics_of_unknown_pillar(self, async_client):
        resp = await async_client.get(f"{API}/pillars/P99/topics")
        assert resp.status_code == 404

    async def test_health(self, async_client, sample_txt_bytes):
        await _upload(async_client, sample_txt_bytes)

        body = (await async_client.get(f"{API}/health")).json()

        assert body["status"] == "ok"
        assert body["items"] == 1
        assert body["reasoning"] is True
        assert body["storage_backend"] == "local"
        assert body["taxonomy_version"] == "2.4"
