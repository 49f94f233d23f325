"""
YouTube Data API client for discovering channel uploads and cumulative counters.
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import Optional, List, Dict, Any

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config import settings
from ingestion.types import DiscoveredVideo, SourceUnavailableError, VideoType

logger = logging.getLogger(__name__)

SHORT_MAX_SECONDS = 180
THUMBNAIL_URL_TEMPLATE = "https://i.ytimg.com/vi/{video_id}/mqdefault.jpg"

_DURATION_RE = re.compile(
    r"P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?"
)


def parse_duration(duration: Optional[str]) -> int:
    """Parse an ISO 8601 duration (PT4M13S) to seconds. Malformed input is 0."""
    if not duration:
        return 0
    match = _DURATION_RE.fullmatch(duration.strip().upper())
    if not match:
        return 0

    days = int(match.group("days") or 0)
    hours = int(match.group("hours") or 0)
    minutes = int(match.group("minutes") or 0)
    seconds = int(match.group("seconds") or 0)

    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def classify_video_type(duration_seconds: int) -> VideoType:
    """Shorts are up to three minutes; unknown (0s) durations count as long-form."""
    if 0 < duration_seconds <= SHORT_MAX_SECONDS:
        return "short"
    return "long"


def thumbnail_url_for(video_id: str) -> str:
    return THUMBNAIL_URL_TEMPLATE.format(video_id=video_id)


def _parse_published_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class YouTubeClient:
    """Client for interacting with YouTube Data API v3."""

    def __init__(self, api_key: Optional[str] = None, credentials: Any = None, service: Any = None):
        """
        Initialize YouTube client.

        Args:
            api_key: API key for public data access
            credentials: OAuth2 credentials for authenticated access
            service: Prebuilt discovery resource (tests, shared transports)
        """
        if service is not None:
            self.youtube = service
        elif credentials:
            self.youtube = build("youtube", "v3", credentials=credentials, cache_discovery=False)
        elif api_key:
            self.youtube = build("youtube", "v3", developerKey=api_key, cache_discovery=False)
        else:
            raise ValueError("Either api_key or credentials must be provided")

    async def _execute(self, request: Any) -> Dict[str, Any]:
        return await asyncio.to_thread(request.execute)

    async def get_uploads_playlist_id(self, channel_id: str) -> str:
        """Resolve the channel's uploads playlist id."""
        try:
            response = await self._execute(
                self.youtube.channels().list(part="contentDetails", id=channel_id)
            )
        except HttpError as e:
            raise SourceUnavailableError(f"Failed to fetch channel details from Data API: {e}") from e

        items = response.get("items") or []
        uploads = (
            items[0].get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads")
            if items
            else None
        )
        if not uploads:
            raise SourceUnavailableError("No uploads playlist found")
        return uploads

    async def list_upload_video_ids(
        self,
        uploads_playlist_id: str,
        max_pages: Optional[int] = None,
        max_results: Optional[int] = None,
    ) -> List[str]:
        """
        Page through the uploads playlist, newest first.

        Bounded by page count and total ids so a large back catalogue
        cannot burn through the daily quota.
        """
        max_pages = max_pages or settings.SYNC_MAX_PAGES
        max_results = max_results or settings.SYNC_MAX_VIDEOS
        page_size = max(1, min(settings.SYNC_PAGE_SIZE, 50))

        video_ids: List[str] = []
        next_page_token = None
        pages = 0

        while pages < max_pages and len(video_ids) < max_results:
            try:
                response = await self._execute(
                    self.youtube.playlistItems().list(
                        part="snippet,contentDetails",
                        playlistId=uploads_playlist_id,
                        maxResults=page_size,
                        pageToken=next_page_token,
                    )
                )
            except HttpError as e:
                logger.warning("Uploads page %d failed for playlist %s: %s", pages + 1, uploads_playlist_id, e)
                break

            for item in response.get("items", []):
                video_id = (
                    item.get("contentDetails", {}).get("videoId")
                    or item.get("snippet", {}).get("resourceId", {}).get("videoId")
                )
                if video_id and video_id not in video_ids:
                    video_ids.append(video_id)

            pages += 1
            next_page_token = response.get("nextPageToken")
            if not next_page_token:
                break

        return video_ids[:max_results]

    async def get_video_details(self, video_ids: List[str]) -> List[DiscoveredVideo]:
        """
        Get snippet, duration and statistics for videos.

        A failing batch is logged and skipped; the rest still come back.
        """
        batch_size = max(1, min(settings.SYNC_DETAILS_BATCH_SIZE, 50))
        result: List[DiscoveredVideo] = []

        for i in range(0, len(video_ids), batch_size):
            batch = video_ids[i:i + batch_size]

            try:
                response = await self._execute(
                    self.youtube.videos().list(
                        part="snippet,contentDetails,statistics",
                        id=",".join(batch),
                    )
                )
            except HttpError as e:
                logger.warning("Video details batch %d-%d failed: %s", i, i + len(batch), e)
                continue

            for item in response.get("items", []):
                result.append(self._normalize_video(item))

        return result

    def _normalize_video(self, item: Dict[str, Any]) -> DiscoveredVideo:
        video_id = item["id"]
        snippet = item.get("snippet", {})
        stats = item.get("statistics", {})
        duration_seconds = parse_duration(item.get("contentDetails", {}).get("duration"))

        return DiscoveredVideo(
            video_id=video_id,
            title=snippet.get("title", ""),
            published_at=_parse_published_at(snippet.get("publishedAt")),
            thumbnail_url=thumbnail_url_for(video_id),
            view_count=_to_int(stats.get("viewCount")),
            like_count=_to_int(stats.get("likeCount")),
            comment_count=_to_int(stats.get("commentCount")),
            duration_seconds=duration_seconds,
            video_type=classify_video_type(duration_seconds),
        )

    async def discover_videos(self, channel_id: str) -> List[DiscoveredVideo]:
        """Resolve uploads, page ids, then fetch full details for each."""
        uploads_playlist_id = await self.get_uploads_playlist_id(channel_id)
        video_ids = await self.list_upload_video_ids(uploads_playlist_id)
        if not video_ids:
            return []
        return await self.get_video_details(video_ids)


def create_youtube_client_with_oauth(credentials: Any) -> YouTubeClient:
    """Create a YouTube client using OAuth credentials."""
    return YouTubeClient(credentials=credentials)
