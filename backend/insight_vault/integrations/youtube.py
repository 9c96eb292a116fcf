"""
YouTube Data API v3 video metadata source.

Endpoints used:
    GET /videos?part=snippet&id=<video id>
    GET /playlistItems?part=snippet&playlistId=<id>&maxResults=<n>&pageToken=<t>

Only metadata is read (title, description, channel). Captions and media are
never downloaded.

URL helpers accept watch, short (youtu.be), embed and shorts URLs, or a bare
id, and raise ValidationFailed for anything else.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from insight_vault.core.config import Settings
from insight_vault.core.errors import (
    ConfigurationMissing,
    NotFound,
    UpstreamUnavailable,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

_VIDEO_URL = re.compile(
    r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)"
    r"([A-Za-z0-9_-]{6,})"
)
_BARE_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
_PLAYLIST_PARAM = re.compile(r"[?&]list=([A-Za-z0-9_-]+)")
_BARE_PLAYLIST_ID = re.compile(r"^[A-Za-z0-9_-]{12,}$")


@dataclass(frozen=True)
class VideoMetadata:
    video_id:    str
    title:       str
    description: str
    channel:     str
    url:         str


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def extract_video_id(ref: str) -> str:
    """Return the video id from a URL or a bare id."""
    value = (ref or "").strip()
    match = _VIDEO_URL.search(value)
    if match:
        return match.group(1)
    if _BARE_VIDEO_ID.match(value):
        return value
    raise ValidationFailed("Invalid video URL.", {"url": value})


def extract_playlist_id(ref: str) -> str:
    """Return the playlist id from a URL carrying list=… or a bare id."""
    value = (ref or "").strip()
    match = _PLAYLIST_PARAM.search(value)
    if match:
        return match.group(1)
    if "/" not in value and _BARE_PLAYLIST_ID.match(value):
        return value
    raise ValidationFailed("Invalid playlist URL.", {"url": value})


class YouTubeVideoSource:
    """
    Async metadata client.

    Each call opens a short-lived httpx.AsyncClient; `transport` lets tests
    swap in httpx.MockTransport without touching the network.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://www.googleapis.com/youtube/v3",
        page_size: int = 50,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key   = api_key
        self._base_url  = base_url.rstrip("/")
        self._page_size = max(1, min(page_size, 50))
        self._timeout   = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "YouTubeVideoSource":
        return cls(
            api_key=settings.youtube_api_key,
            base_url=settings.youtube_api_base_url,
            page_size=settings.youtube_page_size,
            timeout=settings.http_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _get(self, path: str, params: dict[str, object]) -> dict:
        if not self.configured:
            raise ConfigurationMissing("youtube_api_key", "YOUTUBE_API_KEY not configured.")

        query = {**params, "key": self._api_key}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as http:
                resp = await http.get(f"{self._base_url}/{path}", params=query)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "YouTube API error | path=%s status=%d", path, exc.response.status_code,
            )
            raise UpstreamUnavailable(
                f"YouTube API error: HTTP {exc.response.status_code}",
                {"path": path},
            ) from exc
        except httpx.RequestError as exc:
            logger.error("YouTube API network error | path=%s error=%s", path, exc)
            raise UpstreamUnavailable(f"YouTube API error: {exc}", {"path": path}) from exc

    async def get_video(self, video_id: str) -> VideoMetadata:
        data = await self._get("videos", {"part": "snippet", "id": video_id})
        items = data.get("items") or []
        if not items:
            raise NotFound("video", video_id)

        snippet = items[0].get("snippet") or {}
        return VideoMetadata(
            video_id=video_id,
            title=snippet.get("title", ""),
            description=snippet.get("description", ""),
            channel=snippet.get("channelTitle", ""),
            url=watch_url(video_id),
        )

    async def list_collection_members(
        self,
        collection_id: str,
        page_token: str | None = None,
    ) -> tuple[list[VideoMetadata], str | None]:
        params: dict[str, object] = {
            "part":       "snippet",
            "playlistId": collection_id,
            "maxResults": self._page_size,
        }
        if page_token:
            params["pageToken"] = page_token

        data = await self._get("playlistItems", params)
        members: list[VideoMetadata] = []
        for entry in data.get("items") or []:
            snippet = entry.get("snippet") or {}
            video_id = (snippet.get("resourceId") or {}).get("videoId")
            if not video_id:
                continue
            members.append(
                VideoMetadata(
                    video_id=video_id,
                    title=snippet.get("title", ""),
                    description=snippet.get("description", ""),
                    channel=snippet.get("videoOwnerChannelTitle") or snippet.get("channelTitle", ""),
                    url=watch_url(video_id),
                )
            )
        return members, data.get("nextPageToken")

    async def iter_collection_members(self, collection_id: str) -> AsyncIterator[VideoMetadata]:
        """Yield every member, following nextPageToken until exhausted."""
        token: str | None = None
        while True:
            members, token = await self.list_collection_members(collection_id, token)
            for member in members:
                yield member
            if not token:
                break
