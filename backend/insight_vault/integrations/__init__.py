"""
External Integrations Package

Clients for third-party metadata sources. Currently only YouTube.
"""

from insight_vault.integrations.youtube import (
    VideoMetadata,
    YouTubeVideoSource,
    extract_playlist_id,
    extract_video_id,
)

__all__ = [
    "VideoMetadata",
    "YouTubeVideoSource",
    "extract_playlist_id",
    "extract_video_id",
]
