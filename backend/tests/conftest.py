"""
Root conftest.py: shared fixtures for ALL tests (unit + integration)

Fixture hierarchy (all function-scoped):
  settings        : Settings pointing at a fresh SQLite file under tmp_path
  fake_reasoning  : scripted ReasoningService (no OpenAI calls)
  fake_videos     : in-memory video source (no YouTube calls)
  container       : fully wired ServiceContainer, schema created
  async_client    : httpx.AsyncClient bound to the FastAPI app via ASGITransport

Environment strategy:
  - Every test gets its own database file; nothing is shared between tests.
  - Remote storage is disabled by default, so originals land in tmp_path.
  - The reasoning service and video source are fakes injected through
    build_container(); no module globals are patched.
  - S3 tests patch aioboto3.Session with an AsyncMock client.

How to run:
  pytest                                   # all tests
  pytest -m unit                           # unit tests only (fast, no I/O)
  pytest -m integration                    # HTTP routes through the ASGI app
  pytest backend/tests/unit/test_batch.py  # single file
"""

from __future__ import annotations

import json
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from insight_vault.core.config import Settings
from insight_vault.core.errors import (
    ConfigurationMissing,
    NotFound,
    ReasoningUnavailable,
    UpstreamUnavailable,
)
from insight_vault.integrations.youtube import VideoMetadata, YouTubeVideoSource, watch_url
from insight_vault.llm.gateway import Completion, ReasoningService
from insight_vault.services.batch import InProcessBatchPublisher
from insight_vault.services.container import ServiceContainer, build_container


# ─────────────────────────────────────────────────────────────────────────────
# Fakes
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_REPLY = {
    "summary":           "A practical guide to listening well in difficult conversations.",
    "tags":              ["Comunicação", "escuta", "empatia", "feedback"],
    "pillar_id":         "P4",
    "pillar_name":       "Relationships, Communication & Sales",
    "topic_id":          "P4.05",
    "topic_name":        "Comunicação",
    "confidence":        0.91,
    "rationale":         "The content is about interpersonal communication.",
    "suggest_new_topic": None,
}


class FakeReasoningService(ReasoningService):
    """
    Scripted reasoning service.

    Each call pops the next entry from `replies`: a str is returned as the
    completion text, an Exception is raised. When the script is exhausted the
    default JSON reply is returned.
    """

    def __init__(
        self,
        replies: list | None = None,
        configured: bool = True,
        model: str = "fake-model-1",
    ) -> None:
        self.replies = list(replies or [])
        self.calls: list[tuple[str, str]] = []
        self._configured = configured
        self._model = model

    @property
    def configured(self) -> bool:
        return self._configured

    @property
    def model_identifier(self) -> str:
        return self._model

    async def complete(self, system_prompt: str, user_prompt: str, json_response: bool = True) -> Completion:
        if not self._configured:
            raise ReasoningUnavailable()
        self.calls.append((system_prompt, user_prompt))
        reply = self.replies.pop(0) if self.replies else json.dumps(DEFAULT_REPLY)
        if isinstance(reply, Exception):
            raise reply
        return Completion(text=reply, model_identifier=self._model, token_count=123)


class FakeVideoSource(YouTubeVideoSource):
    """
    In-memory video source.

    videos    : video_id → VideoMetadata returned by get_video()
    playlists : playlist_id → list of pages (each a list of VideoMetadata)
    failing   : video ids whose get_video() raises UpstreamUnavailable
    """

    def __init__(
        self,
        videos: dict[str, VideoMetadata] | None = None,
        playlists: dict[str, list[list[VideoMetadata]]] | None = None,
        failing: set[str] | None = None,
        configured: bool = True,
    ) -> None:
        super().__init__(api_key="fake-youtube-key" if configured else "")
        self.videos = dict(videos or {})
        self.playlists = dict(playlists or {})
        self.failing = set(failing or ())
        self.video_calls: list[str] = []

    def add_playlist(self, playlist_id: str, pages: list[list[VideoMetadata]]) -> None:
        self.playlists[playlist_id] = pages
        for page in pages:
            for member in page:
                self.videos.setdefault(member.video_id, member)

    async def get_video(self, video_id: str) -> VideoMetadata:
        self.video_calls.append(video_id)
        if not self.configured:
            raise ConfigurationMissing("youtube_api_key")
        if video_id in self.failing:
            raise UpstreamUnavailable(f"metadata unavailable for {video_id}")
        if video_id not in self.videos:
            raise NotFound("video", video_id)
        return self.videos[video_id]

    async def list_collection_members(
        self,
        collection_id: str,
        page_token: str | None = None,
    ) -> tuple[list[VideoMetadata], str | None]:
        if not self.configured:
            raise ConfigurationMissing("youtube_api_key")
        pages = self.playlists.get(collection_id)
        if pages is None:
            raise NotFound("playlist", collection_id)
        index = int(page_token or 0)
        next_token = str(index + 1) if index + 1 < len(pages) else None
        return list(pages[index]), next_token


# ─────────────────────────────────────────────────────────────────────────────
# Factories
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def reply_json() -> Callable[..., str]:
    """
    Build a classifier reply: reply_json(pillar_id="P6", confidence=1.4).
    Keys set to ... are removed from the payload.
    """
    def _build(**overrides) -> str:
        payload = {**DEFAULT_REPLY, **overrides}
        return json.dumps({k: v for k, v in payload.items() if v is not ...})

    return _build


@pytest.fixture
def make_video() -> Callable[..., VideoMetadata]:
    def _build(video_id: str, title: str | None = None, description: str = "", channel: str = "Vault Channel") -> VideoMetadata:
        return VideoMetadata(
            video_id=video_id,
            title=title if title is not None else f"Video {video_id}",
            description=description or f"Description of {video_id}",
            channel=channel,
            url=watch_url(video_id),
        )

    return _build


# ─────────────────────────────────────────────────────────────────────────────
# Sample file bytes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_txt_bytes() -> bytes:
    return "Escuta ativa e comunicação não violenta no trabalho.\nSecond line.\n".encode("utf-8")


@pytest.fixture
def sample_png_bytes() -> bytes:
    """PNG signature followed by filler; enough for magic-byte detection."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Minimal PDF header; passes magic-byte detection."""
    return b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF"


# ─────────────────────────────────────────────────────────────────────────────
# Settings / services
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path) -> Settings:
    """Isolated settings: tmp SQLite database, local storage, no credentials."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'vault.db'}",
        upload_dir=str(tmp_path / "uploads"),
        openai_api_key="",
        youtube_api_key="",
        aws_access_key_id="",
        aws_secret_access_key="",
        s3_bucket="",
        s3_owner_canonical_id="",
        batch_backend="inprocess",
        app_env="test",
    )


@pytest.fixture
def make_reasoning() -> type[FakeReasoningService]:
    """Factory: make_reasoning(["not json", TimeoutError()], configured=True)."""
    return FakeReasoningService


@pytest.fixture
def make_video_source() -> type[FakeVideoSource]:
    """Factory: make_video_source(videos={...}, failing={...})."""
    return FakeVideoSource


@pytest.fixture
def fake_reasoning() -> FakeReasoningService:
    return FakeReasoningService()


@pytest.fixture
def fake_videos() -> FakeVideoSource:
    return FakeVideoSource()


@pytest_asyncio.fixture
async def container(settings, fake_reasoning, fake_videos) -> AsyncGenerator[ServiceContainer, None]:
    """Wired container with schema created; disposed after the test."""
    vault = build_container(
        settings,
        reasoning=fake_reasoning,
        videos=fake_videos,
        publisher=InProcessBatchPublisher(),
    )
    await vault.startup()
    try:
        yield vault
    finally:
        await vault.shutdown()


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI test client
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def app(container):
    """
    FastAPI app bound to the test container.

    ASGITransport does not run the lifespan hook, so the container the hook
    would have built is attached to app.state directly.
    """
    from insight_vault.main import create_app

    application = create_app(container=container)
    application.state.container = container
    return application


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client using ASGITransport (httpx >= 0.28 has no app= shortcut)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
